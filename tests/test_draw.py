from secret_santa.services.draw import (
    MAX_ATTEMPTS,
    DrawFailure,
    can_perform_draw,
    normalize_exclusions,
    perform_draw,
)


def assert_single_cycle(pairs, participants):
    givers = [giver for giver, _ in pairs]
    receivers = [receiver for _, receiver in pairs]
    assert sorted(givers) == sorted(participants)
    assert sorted(receivers) == sorted(participants)
    assert all(giver != receiver for giver, receiver in pairs)

    mapping = dict(pairs)
    start = participants[0]
    seen = [start]
    current = mapping[start]
    while current != start:
        seen.append(current)
        current = mapping[current]
    assert len(seen) == len(participants)


def test_draw_five_participants_single_cycle():
    participants = ["A", "B", "C", "D", "E"]
    result = perform_draw(participants)
    assert result.ok
    assert len(result.pairs) == 5
    assert_single_cycle(result.pairs, participants)


def test_draw_pairs_follow_cycle_order():
    result = perform_draw([1, 2, 3, 4], seed=3)
    pairs = result.pairs
    for index, (_, receiver) in enumerate(pairs):
        assert pairs[(index + 1) % len(pairs)][0] == receiver


def test_draw_two_people():
    result = perform_draw([10, 20])
    assert result.as_mapping() == {10: 20, 20: 10}


def test_draw_never_splits_into_swaps():
    participants = [1, 2, 3, 4]
    for _ in range(50):
        assert_single_cycle(perform_draw(participants).pairs, participants)


def test_draw_respects_exclusions():
    participants = [1, 2, 3, 4, 5, 6]
    exclusions = {1: {2, 3}, 2: {1}, 4: {5, 6}, 6: {1}}
    for _ in range(30):
        result = perform_draw(participants, exclusions)
        assert result.ok
        assert_single_cycle(result.pairs, participants)
        for giver, receiver in result.pairs:
            assert receiver not in exclusions.get(giver, set())


def test_draw_accepts_pair_exclusions():
    participants = ["A", "B", "C"]
    result = perform_draw(participants, [("A", "B")])
    assert result.ok
    assert result.as_mapping() == {"A": "C", "C": "B", "B": "A"}


def test_exclusions_are_directed():
    result = perform_draw(["A", "B", "C"], {"A": {"B"}})
    assert result.as_mapping()["A"] == "C"
    assert result.as_mapping()["B"] == "A"


def test_draw_forced_cycle():
    participants = [1, 2, 3, 4]
    exclusions = {1: {3, 4}, 2: {1, 4}, 3: {1, 2}, 4: {2, 3}}
    result = perform_draw(participants, exclusions)
    assert result.as_mapping() == {1: 2, 2: 3, 3: 4, 4: 1}


def test_exclusions_outside_roster_are_ignored():
    result = perform_draw([1, 2, 3], {1: {99}, 42: {2}})
    assert result.ok
    assert_single_cycle(result.pairs, [1, 2, 3])


def test_draw_is_not_deterministic():
    participants = ["A", "B", "C", "D", "E"]
    shapes = {tuple(sorted(perform_draw(participants).pairs)) for _ in range(20)}
    assert len(shapes) > 1


def test_draw_deterministic_seed():
    participants = [1, 2, 3, 4, 5]
    assert perform_draw(participants, seed=123).pairs == perform_draw(participants, seed=123).pairs


def test_insufficient_participants():
    for participants in ([], ["A"], ["A", "A"]):
        result = perform_draw(participants)
        assert not result.ok
        assert result.failure == DrawFailure.INSUFFICIENT_PARTICIPANTS
        assert result.pairs == []


def test_mutual_exclusion_of_two_fails():
    result = perform_draw([1, 2], [(1, 2), (2, 1)])
    assert result.failure == DrawFailure.NO_VALID_CYCLE
    assert result.attempts == 0


def test_giver_without_receiver_is_named():
    result = perform_draw(["A", "B", "C"], {"A": {"B", "C"}})
    assert result.failure == DrawFailure.NO_VALID_CYCLE
    assert result.blocked_participant == "A"
    assert result.pairs == []


def test_receiver_nobody_can_give_to_is_named():
    result = perform_draw(["A", "B", "C"], [("A", "C"), ("B", "C")])
    assert result.failure == DrawFailure.NO_VALID_CYCLE
    assert result.blocked_participant == "C"


def test_retry_budget_is_capped():
    # only two disjoint swaps are allowed, so no single cycle exists
    exclusions = {1: {3, 4}, 2: {3, 4}, 3: {1, 2}, 4: {1, 2}}
    result = perform_draw([1, 2, 3, 4], exclusions)
    assert result.failure == DrawFailure.NO_VALID_CYCLE
    assert result.attempts == MAX_ATTEMPTS

    result = perform_draw([1, 2, 3, 4], exclusions, max_attempts=7)
    assert result.attempts == 7


def test_step_budget_bounds_each_attempt():
    roster = ["A", "B", "C", "D"]
    starved = perform_draw(roster, max_attempts=3, max_steps=0, seed=1)
    assert starved.failure == DrawFailure.NO_VALID_CYCLE
    assert starved.attempts == 3

    result = perform_draw(roster, max_attempts=3, max_steps=len(roster), seed=1)
    assert result.ok


def test_malformed_exclusion_is_reported():
    result = perform_draw([1, 2, 3], [(1,)])
    assert result.failure == DrawFailure.MALFORMED_EXCLUSION


def test_can_perform_draw():
    assert can_perform_draw([1, 2, 3]).possible
    assert not can_perform_draw([1]).possible
    check = can_perform_draw([1, 2, 3], {2: {1, 3}})
    assert not check.possible
    assert check.blocked_participant == 2
    assert check.failure == DrawFailure.NO_VALID_CYCLE


def test_normalize_exclusions_merges_forms():
    assert normalize_exclusions([(1, 2), (1, 3)]) == {1: {2, 3}}
    assert normalize_exclusions({1: [2]}) == {1: {2}}
    assert normalize_exclusions(None) == {}
