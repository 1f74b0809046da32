"""
tests/test_likes.py -- Unit tests for likes/store.py and likes/service.py.

Covers:
  - like then unlike restores the original list
  - guest likes live in the session, user likes in user_likes.json
  - merge {A,B} into {B,C} gives {A,B,C}; a second merge is a no-op
  - NotFound / Forbidden raised before any mutation
"""

from __future__ import annotations

import pytest

from auth.session import SessionContext
from core.errors import Forbidden, NotFound
from likes.service import get_effective_likes, merge_guest_into_user, toggle_like


def _user(stores, user_id: str = "u_user"):
    return stores.users.get_by_id(user_id)


class TestLikeStore:
    def test_seed_gives_demo_accounts_empty_lists(self, stores) -> None:
        assert stores.likes.get("u_admin") == []
        assert stores.likes.get("u_unknown") == []

    def test_toggle_pair_is_identity(self, stores) -> None:
        stores.likes.add_many("u_user", ["t_pub2"])
        before = stores.likes.get("u_user")
        assert stores.likes.toggle("u_user", "t_pub") == (True, ["t_pub2", "t_pub"])
        assert stores.likes.toggle("u_user", "t_pub") == (False, before)

    def test_add_many_is_ordered_union(self, stores) -> None:
        stores.likes.add_many("u_user", ["B", "C"])
        assert stores.likes.add_many("u_user", ["A", "B"]) == ["B", "C", "A"]

    def test_ensure_keeps_existing_likes(self, stores) -> None:
        stores.likes.add_many("u_user", ["t_pub"])
        stores.likes.ensure("u_user")
        stores.likes.ensure("u_new")
        assert stores.likes.get("u_user") == ["t_pub"]
        assert stores.likes.get("u_new") == []


class TestToggleLike:
    def test_guest_like_goes_to_session_only(self, stores) -> None:
        session = SessionContext({})
        liked, likes = toggle_like("t_pub", session, None, stores.catalog, stores.likes)
        assert (liked, likes) == (True, ["t_pub"])
        assert session.guest_likes == ["t_pub"]
        assert stores.likes.get("u_user") == []

    def test_guest_unlike(self, stores) -> None:
        session = SessionContext({"guestLikes": ["t_pub", "t_pub2"]})
        assert toggle_like("t_pub", session, None, stores.catalog, stores.likes) == (False, ["t_pub2"])

    def test_user_like_is_persisted(self, stores) -> None:
        session = SessionContext({"userId": "u_user"})
        liked, likes = toggle_like("t_pub", session, _user(stores), stores.catalog, stores.likes)
        assert liked is True
        assert stores.likes.get("u_user") == ["t_pub"]
        assert session.guest_likes == []

    def test_missing_track_raises_not_found(self, stores) -> None:
        session = SessionContext({})
        with pytest.raises(NotFound):
            toggle_like("t_nope", session, None, stores.catalog, stores.likes)
        assert session.guest_likes == []

    def test_hidden_track_raises_forbidden_without_mutation(self, stores) -> None:
        session = SessionContext({})
        with pytest.raises(Forbidden):
            toggle_like("t_pending", session, None, stores.catalog, stores.likes)
        assert session.guest_likes == []

    def test_owner_can_like_own_pending_track(self, stores) -> None:
        artist = _user(stores, "u_artist")
        liked, _ = toggle_like("t_pending", SessionContext({}), artist, stores.catalog, stores.likes)
        assert liked is True


class TestMerge:
    def test_merge_is_union_and_clears_guest_list(self, stores) -> None:
        stores.likes.add_many("u_user", ["B", "C"])
        session = SessionContext({"guestLikes": ["A", "B"]})
        merge_guest_into_user(session, "u_user", stores.likes)
        assert set(stores.likes.get("u_user")) == {"A", "B", "C"}
        assert session.guest_likes == []

    def test_second_merge_is_noop(self, stores) -> None:
        session = SessionContext({"guestLikes": ["A"]})
        merge_guest_into_user(session, "u_user", stores.likes)
        after_first = stores.likes.get("u_user")
        merge_guest_into_user(session, "u_user", stores.likes)
        assert stores.likes.get("u_user") == after_first

    def test_effective_likes(self, stores) -> None:
        stores.likes.add_many("u_user", ["t_pub"])
        session = SessionContext({"guestLikes": ["t_pub2"]})
        assert get_effective_likes(session, None, stores.likes) == ["t_pub2"]
        assert get_effective_likes(session, _user(stores), stores.likes) == ["t_pub"]
        assert get_effective_likes(SessionContext({}), None, stores.likes) == []
