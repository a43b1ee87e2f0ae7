"""Change notification: debounced, coalesced batches delivered to filtered listeners."""
