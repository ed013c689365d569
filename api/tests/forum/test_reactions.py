"""Tests for the like/dislike toggle."""

import pytest

from src.forum.reactions import ReactionKind, ReactionState, toggle


class TestToggle:
    def test_like_adds_user(self) -> None:
        state = toggle(set(), set(), "u1", ReactionKind.LIKE)
        assert state.likes == {"u1"}
        assert state.dislikes == frozenset()

    def test_like_twice_removes_like(self) -> None:
        first = toggle(set(), set(), "u1", "like")
        second = toggle(first.likes, first.dislikes, "u1", "like")
        assert second.likes == frozenset()
        assert second.dislikes == frozenset()

    def test_like_then_dislike_moves_user(self) -> None:
        """Scenario: a like followed by a dislike leaves only the dislike."""
        liked = toggle(set(), set(), "u1", ReactionKind.LIKE)
        disliked = toggle(liked.likes, liked.dislikes, "u1", ReactionKind.DISLIKE)
        assert "u1" in disliked.dislikes
        assert "u1" not in disliked.likes

    def test_other_users_untouched(self) -> None:
        state = toggle({"u2"}, {"u3"}, "u1", ReactionKind.DISLIKE)
        assert state.likes == {"u2"}
        assert state.dislikes == {"u3", "u1"}

    def test_inputs_are_not_mutated(self) -> None:
        likes, dislikes = {"u1"}, set()
        toggle(likes, dislikes, "u1", ReactionKind.DISLIKE)
        assert likes == {"u1"}
        assert dislikes == set()

    @pytest.mark.parametrize(
        "sequence",
        [
            ["like", "dislike", "like"],
            ["dislike", "dislike", "like", "like", "dislike"],
            ["like", "like", "like"],
        ],
    )
    def test_sets_stay_disjoint(self, sequence: list[str]) -> None:
        likes: frozenset[str] = frozenset()
        dislikes: frozenset[str] = frozenset()
        for kind in sequence:
            state = toggle(likes, dislikes, "u1", kind)
            likes, dislikes = state.likes, state.dislikes
            assert not likes & dislikes

    def test_invalid_kind(self) -> None:
        with pytest.raises(ValueError):
            toggle(set(), set(), "u1", "love")


class TestReactionState:
    def test_counts_and_reaction_of(self) -> None:
        state = ReactionState(likes=frozenset({"a", "b"}), dislikes=frozenset({"c"}))
        assert state.like_count == 2
        assert state.dislike_count == 1
        assert state.reaction_of("a") is ReactionKind.LIKE
        assert state.reaction_of("c") is ReactionKind.DISLIKE
        assert state.reaction_of("z") is None
