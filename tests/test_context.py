"""Tests for request-scoped logging context."""

from uuid import uuid4

from src.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_request_id,
    get_user_id,
    set_request_id,
    set_user_id,
)


class TestContextVars:
    def teardown_method(self) -> None:
        clear_context()

    def test_set_request_id_generates_one(self) -> None:
        request_id = set_request_id()
        assert request_id
        assert get_request_id() == request_id

    def test_user_id_is_stringified(self) -> None:
        user_id = uuid4()
        set_user_id(user_id)
        assert get_user_id() == str(user_id)

    def test_clear_context(self) -> None:
        set_request_id("req-1")
        set_user_id("user-1")
        clear_context()
        assert get_request_id() == ""
        assert get_user_id() is None


class TestRequestContext:
    def test_values_visible_inside_block(self) -> None:
        with RequestContext(request_id="req-42", correlation_id="order_1"):
            context = get_context()
            assert context["request_id"] == "req-42"
            assert context["correlation_id"] == "order_1"

    def test_values_restored_on_exit(self) -> None:
        set_request_id("outer")
        with RequestContext(request_id="inner"):
            assert get_request_id() == "inner"
        assert get_request_id() == "outer"
        clear_context()
