"""Entity storage, deep merge and relation resolution.

Layout:
    entity_store.py   type name -> {identity key -> record}; CRUD and scans
    merge.py          deep-merge engine behind Repository.merge_rpc
    relations.py      shallow and fully nested relation resolution
"""
