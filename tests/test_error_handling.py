"""Tests for the result type, boundary mapping, validation and pagination."""

from __future__ import annotations

import logging

import pytest
from pydantic import BaseModel

from schoolcore import (
    STATUS_BY_KIND,
    DuplicateKeyError,
    ErrorKind,
    Failure,
    Ok,
    SchoolCoreError,
    TransactionConflict,
    to_response,
)
from schoolcore.exceptions import returns_result
from schoolcore.managers import UNSET
from schoolcore.managers.base import check_id, provided
from schoolcore.pagination import DEFAULT_LIMIT, MAX_LIMIT, paginate, parse_pagination
from schoolcore.store import MemoryStore, new_id
from schoolcore.validators import Validators


class TestErrorKinds:
    """Tests for failure kinds and their codes."""

    def test_stable_codes(self) -> None:
        """Codes are the strings clients branch on."""
        assert {k.code for k in ErrorKind} == {
            "VALIDATION_ERROR",
            "NOT_FOUND",
            "DUPLICATE",
            "PERMISSION_DENIED",
            "UNAUTHORIZED",
            "CAPACITY_FULL",
            "INVALID_ID",
            "INTERNAL_ERROR",
        }

    def test_every_kind_has_a_status(self) -> None:
        """The boundary maps every kind."""
        assert set(STATUS_BY_KIND) == set(ErrorKind)

    def test_exception_to_failure(self) -> None:
        """Exceptions carry their kind into a Failure."""
        error = DuplicateKeyError("students", "email")
        assert error.to_failure() == Failure(ErrorKind.DUPLICATE, "duplicate key for students.email")
        assert error.details == {"collection": "students", "index": "email"}


class _Manager:
    @returns_result
    async def ok(self):
        return Ok(1)

    @returns_result
    async def rejected(self):
        raise SchoolCoreError("nope", kind=ErrorKind.NOT_FOUND)

    @returns_result
    async def conflicted(self):
        raise TransactionConflict("classroom:1", attempts=5)

    @returns_result
    async def crashed(self):
        raise KeyError("secret internals")


class TestReturnsResult:
    """Tests for the manager boundary decorator."""

    @pytest.mark.asyncio
    async def test_passes_results_through(self) -> None:
        """Returned results are untouched."""
        assert await _Manager().ok() == Ok(1)

    @pytest.mark.asyncio
    async def test_known_errors_become_failures(self) -> None:
        """SchoolCoreError subclasses keep their kind and message."""
        assert await _Manager().rejected() == Failure(ErrorKind.NOT_FOUND, "nope")

    @pytest.mark.asyncio
    async def test_internal_errors_are_hidden(self, caplog: pytest.LogCaptureFixture) -> None:
        """Store diagnostics and unexpected exceptions become a generic INTERNAL failure."""
        with caplog.at_level(logging.ERROR, logger="schoolcore.exceptions"):
            conflicted = await _Manager().conflicted()
            crashed = await _Manager().crashed()

        assert conflicted == Failure(ErrorKind.INTERNAL, "internal error")
        assert crashed == Failure(ErrorKind.INTERNAL, "internal error")
        assert "secret internals" not in crashed.message
        assert any("KeyError" in r.getMessage() for r in caplog.records)


class TestResponder:
    """Tests for the boundary response shape."""

    def test_ok(self) -> None:
        """Success carries data and status 200."""
        assert to_response(Ok({"_id": "x"})) == {
            "ok": True,
            "data": {"_id": "x"},
            "status": 200,
            "code": None,
            "message": "",
        }

    def test_models_are_dumped(self) -> None:
        """Pydantic models inside results become plain dicts."""

        class Item(BaseModel):
            name: str

        response = to_response(Ok({"items": [Item(name="a")]}))
        assert response["data"] == {"items": [{"name": "a"}]}

    @pytest.mark.parametrize(
        "kind,status",
        [
            (ErrorKind.VALIDATION, 400),
            (ErrorKind.INVALID_ID, 400),
            (ErrorKind.UNAUTHORIZED, 401),
            (ErrorKind.PERMISSION_DENIED, 403),
            (ErrorKind.NOT_FOUND, 404),
            (ErrorKind.DUPLICATE, 409),
            (ErrorKind.CAPACITY_FULL, 422),
            (ErrorKind.INTERNAL, 500),
        ],
    )
    def test_failures(self, kind: ErrorKind, status: int) -> None:
        """Each kind maps to its status and code."""
        response = to_response(Failure(kind, "msg"))
        assert (response["ok"], response["status"], response["code"], response["message"]) == (
            False,
            status,
            kind.code,
            "msg",
        )


class TestIdsAndUnset:
    """Tests for id checks and partial-update helpers."""

    def test_check_id(self) -> None:
        """Missing is VALIDATION, malformed is INVALID_ID, well-formed passes."""
        assert check_id("school_id", None) == Failure(ErrorKind.VALIDATION, "school_id is required")
        assert check_id("school_id", "") == Failure(ErrorKind.VALIDATION, "school_id is required")
        assert check_id("school_id", "abc") == Failure(ErrorKind.INVALID_ID, "invalid school_id")
        assert check_id("school_id", new_id()) is None

    def test_provided(self) -> None:
        """UNSET fields are dropped; None and falsy values are kept."""
        assert provided(a=UNSET, b=None, c=0, d="") == {"b": None, "c": 0, "d": ""}
        assert not UNSET
        assert repr(UNSET) == "UNSET"


class TestValidators:
    """Tests for field validation."""

    def test_valid_input(self) -> None:
        """Well-formed fields pass."""
        validators = Validators()
        assert validators.school.create_school({"name": "A", "address": "", "phone": ""}) is None
        assert validators.classroom.update_classroom({}) is None

    def test_first_error_is_reported(self) -> None:
        """Failures name the offending field."""
        error = Validators().classroom.create_classroom({"name": "1A", "capacity": 0})
        assert error.kind is ErrorKind.VALIDATION
        assert error.message.startswith("capacity:")

    def test_update_rejects_null(self) -> None:
        """Explicit nulls are refused on update."""
        error = Validators().school.update_school({"name": None})
        assert error.message == "name may not be null"

    def test_unknown_operation(self) -> None:
        """Asking for an undefined check is a programming error."""
        with pytest.raises(AttributeError):
            Validators().school.delete_school


class TestPagination:
    """Tests for page parsing and paginated queries."""

    @pytest.mark.parametrize(
        "query,expected",
        [
            (None, (1, DEFAULT_LIMIT, 0)),
            ({"page": "3", "limit": "10"}, (3, 10, 20)),
            ({"page": "0", "limit": "-5"}, (1, 1, 0)),
            ({"page": "abc", "limit": "9999"}, (1, MAX_LIMIT, 0)),
            ({"page": 2, "limit": 0}, (2, 1, 1)),
            ({"limit": "0"}, (1, 1, 0)),
            ({"page": "", "limit": ""}, (1, DEFAULT_LIMIT, 0)),
        ],
    )
    def test_parse_pagination(self, query, expected) -> None:
        """Values are parsed, defaulted and clamped."""
        page = parse_pagination(query)
        assert (page.page, page.limit, page.skip) == expected

    @pytest.mark.asyncio
    async def test_paginate(self) -> None:
        """Totals and page counts are reported alongside the data."""
        store = MemoryStore()
        for i in range(5):
            await store.insert("students", {"name": f"s{i}", "school_id": "x"})

        result = await paginate(store, "students", {"school_id": "x"}, parse_pagination({"page": 2, "limit": 2}), sort=[("name", 1)])
        assert [d["name"] for d in result["data"]] == ["s2", "s3"]
        assert (result["total"], result["pages"]) == (5, 3)

        empty = await paginate(store, "students", {"school_id": "y"}, parse_pagination())
        assert (empty["data"], empty["total"], empty["pages"]) == ([], 0, 0)
