"""Tests for record type descriptors and validator adapters."""

from __future__ import annotations

import pytest
from pydantic import BaseModel, field_validator

from relstore.errors import ValidationError
from relstore.messages import Message
from relstore.schema import (
    CallableValidator,
    IdFieldRule,
    PassthroughValidator,
    PydanticValidator,
    RecordType,
    RelationKind,
)


class User(BaseModel):
    id: int
    name: str
    email: str
    age: int | None = None

    @field_validator("email")
    @classmethod
    def _has_at(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("invalid email")
        return v


@pytest.fixture
def user_type() -> RecordType:
    return RecordType("user", User)


class TestValidators:
    def test_pydantic_accepts_valid(self, user_type: RecordType):
        data = {"id": 1, "name": "John Doe", "email": "john@example.com", "age": 25}
        assert user_type.validate(data) == data

    def test_pydantic_omits_unset_optionals(self, user_type: RecordType):
        data = {"id": 1, "name": "John", "email": "john@example.com"}
        assert user_type.validate(data) == data

    def test_pydantic_rejects_invalid(self, user_type: RecordType):
        with pytest.raises(ValidationError) as excinfo:
            user_type.validate({"id": 1, "name": "John", "email": "invalid-email"})
        err = excinfo.value
        assert err.type_name == "user"
        assert [e.location for e in err.errors] == ["email"]

    def test_pydantic_lists_every_violation(self, user_type: RecordType):
        with pytest.raises(ValidationError) as excinfo:
            user_type.validate({"id": "x"})
        locations = {e.location for e in excinfo.value.errors}
        assert {"id", "name", "email"} <= locations

    def test_validation_error_is_value_error(self, user_type: RecordType):
        with pytest.raises(ValueError):
            user_type.validate({"id": 1})

    def test_passthrough_copies(self):
        raw = {"id": 1, "anything": [1, 2]}
        validated = PassthroughValidator("thing").validate(raw)
        assert validated == raw
        assert validated is not raw

    def test_passthrough_rejects_non_mapping(self):
        with pytest.raises(ValidationError):
            PassthroughValidator("thing").validate(["not", "a", "record"])

    def test_callable_wraps_value_error(self):
        def check(raw):
            if "id" not in raw:
                raise ValueError("id required")
            return raw

        validator = CallableValidator(check, "thing")
        assert validator.validate({"id": 1}) == {"id": 1}
        with pytest.raises(ValidationError, match="id required"):
            validator.validate({})

    def test_descriptor_coerces_validators(self):
        assert isinstance(RecordType("a").validator, PassthroughValidator)
        assert isinstance(RecordType("b", User).validator, PydanticValidator)
        assert isinstance(RecordType("c", lambda raw: raw).validator, CallableValidator)
        custom = PassthroughValidator("d")
        assert RecordType("d", custom).validator is custom

    def test_unsupported_validator(self):
        with pytest.raises(TypeError):
            RecordType("bad", 42)


class TestIdentity:
    def test_default_identity_field(self):
        assert RecordType("user").id_field == "id"

    def test_identity_of(self):
        cell = RecordType("cell", id_field="cell_id")
        assert cell.identity_of({"cell_id": 7}) == 7

    def test_missing_identity(self):
        with pytest.raises(ValidationError, match="cell_id"):
            RecordType("cell", id_field="cell_id").identity_of({"id": 7})


class TestRelations:
    def test_has_many(self):
        user = RecordType("user").has_many("post", local_key="post_ids", array_key="id")
        relation = user.get_relation("post")
        assert relation.kind is RelationKind.ONE_TO_MANY
        assert relation.local_key == "post_ids"
        assert relation.array_key == "id"
        assert relation.foreign_key == "id"

    def test_has_one(self):
        user = RecordType("user").has_one("profile", foreign_key="userId", local_key="id")
        assert user.get_relation("profile").as_dict() == {
            "target_type": "profile",
            "kind": "one-to-one",
            "foreign_key": "userId",
            "local_key": "id",
            "array_key": "id",
        }

    def test_belongs_to_is_mirrored(self):
        post = RecordType("post").belongs_to("user", foreign_key="userId", local_key="id")
        relation = post.get_relation("user")
        assert relation.kind is RelationKind.ONE_TO_ONE
        assert relation.local_key == "userId"
        assert relation.foreign_key == "id"

    def test_last_write_wins_per_target(self):
        node = RecordType("node")
        node.has_many("node", local_key="children")
        node.belongs_to("node", foreign_key="parent_id")
        assert len(node.relations) == 1
        assert node.get_relation("node").kind is RelationKind.ONE_TO_ONE

    def test_missing_relation(self):
        assert RecordType("user").get_relation("post") is None

    def test_related_field_name(self):
        user = RecordType("user")
        assert user.related_field_name("post") == "post"
        user.rename_related("post", "posts")
        assert user.related_field_name("post") == "posts"


class TestMergePathsAndMessages:
    def test_set_merge_path_replaces_table(self):
        cell = RecordType("cell")
        cell.set_merge_path({"products": "sku"})
        cell.set_merge_path({"tree": {"id_field": "node", "children": "kids", "recursive": True}})
        assert cell.merge_paths == {"tree": IdFieldRule("node", "kids", True)}

    def test_create_message(self):
        payload = {"1": {"id": 1, "name": "John"}, "2": None}
        message = RecordType("user").create_message(payload)
        assert message == Message(type="user", payload=payload)

    def test_message_coerce(self):
        message = Message.coerce({"type": "user", "payload": [{"id": 1}]})
        assert message.type == "user"
        assert message.payload == [{"id": 1}]
        with pytest.raises(ValueError):
            Message.coerce({"payload": []})
