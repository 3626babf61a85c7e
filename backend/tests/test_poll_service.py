"""
Tests for poll creation, validation and lookup.
"""

import pytest

from livepoll.core.exceptions import NotFoundError, ValidationError
from livepoll.services.poll_service import (
    create_poll_service,
    get_poll_by_id_service,
    get_user_vote_service,
    list_polls_by_creator_service,
    list_polls_service,
    validate_poll_input,
)


class TestCreatePoll:
    async def test_create_poll(self):
        poll = await create_poll_service("Best color?", ["Red", "Blue"], "user-a")

        assert poll.question == "Best color?"
        assert poll.creator_id == "user-a"
        assert [o.text for o in poll.options] == ["Red", "Blue"]
        assert all(o.votes == 0 and o.voters == [] for o in poll.options)
        assert poll.total_votes == 0
        assert poll.is_closed is False
        assert len({o.id for o in poll.options}) == 2

    async def test_created_poll_is_persisted(self):
        poll = await create_poll_service("Best color?", ["Red", "Blue"], "user-a")
        stored = await get_poll_by_id_service(poll.id)
        assert stored == poll

    async def test_input_is_trimmed(self):
        poll = await create_poll_service("  Lunch?  ", [" Pizza ", "Sushi", "   "], "user-a")
        assert poll.question == "Lunch?"
        assert [o.text for o in poll.options] == ["Pizza", "Sushi"]


class TestPollValidation:
    @pytest.mark.parametrize(
        "question, options, rule",
        [
            ("", ["a", "b"], "Question must not be empty"),
            ("q" * 201, ["a", "b"], "Question must be at most 200"),
            ("Q?", ["only"], "At least 2 options"),
            ("Q?", ["a", "  "], "At least 2 options"),
            ("Q?", [str(i) for i in range(11)], "At most 10 options"),
            ("Q?", ["a", "x" * 101], "Options must be at most 100"),
            ("Q?", ["Red", "red "], "Options must be unique"),
        ],
    )
    def test_rule_violations(self, question, options, rule):
        with pytest.raises(ValidationError) as exc_info:
            validate_poll_input(question, options)
        assert rule in exc_info.value.details

    def test_all_violations_listed(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_poll_input("", ["a"])
        details = exc_info.value.details
        assert "Question must not be empty" in details
        assert "At least 2 options" in details

    def test_blank_options_dropped(self):
        assert validate_poll_input("Q?", ["a", "", "  ", "b", None]) == ("Q?", ["a", "b"])

    def test_valid_input(self):
        assert validate_poll_input("Q?", ["a", "b"]) == ("Q?", ["a", "b"])


class TestPollLookup:
    async def test_unknown_poll(self):
        with pytest.raises(NotFoundError):
            await get_poll_by_id_service("5f1d7f1d7f1d7f1d7f1d7f1d")

    async def test_malformed_id_is_not_found(self):
        with pytest.raises(NotFoundError):
            await get_poll_by_id_service("not-an-id")

    async def test_list_newest_first(self):
        first = await create_poll_service("First?", ["a", "b"], "user-a")
        second = await create_poll_service("Second?", ["a", "b"], "user-b")
        third = await create_poll_service("Third?", ["a", "b"], "user-a")

        assert [p.id for p in await list_polls_service()] == [third.id, second.id, first.id]
        assert [p.id for p in await list_polls_by_creator_service("user-a")] == [third.id, first.id]
        assert await list_polls_by_creator_service("nobody") == []

    async def test_vote_check_without_vote(self):
        poll = await create_poll_service("Q?", ["a", "b"], "user-a")
        assert await get_user_vote_service(poll.id, "user-b") == (False, None)
