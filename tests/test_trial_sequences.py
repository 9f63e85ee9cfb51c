import random
from collections import Counter

import pytest

from trial_sequences import (
    COMPLEX,
    EMOJI,
    EmptyInputError,
    InvalidDesignError,
    LEFT,
    RIGHT,
    VALID,
    analyze_trial_balance,
    balanced_flags,
    derive_probe_side,
    file_name,
    make_trials,
    round_half_away,
    shuffle,
    uniform_choice,
)
from config import MEM_POOL, CUE_PAIRS


# ────────────────────────────────────────────────────────────────────────────
# Randomization utilities
# ────────────────────────────────────────────────────────────────────────────


@pytest.mark.parametrize("x, expected", [
    (0.5, 1), (1.5, 2), (2.5, 3), (2.4, 2), (2.6, 3), (0.0, 0), (-2.5, -3), (-1.2, -1),
])
def test_round_half_away(x, expected):
    assert round_half_away(x) == expected


@pytest.mark.parametrize("n, ratio, ones", [
    (2, 0.6, 1), (5, 0.5, 3), (3, 0.5, 2), (1, 0.5, 1), (10, 0.6, 6), (7, 0.5, 4),
    (0, 0.5, 0), (4, 0.0, 0), (4, 1.0, 4),
])
def test_balanced_flags_counts(n, ratio, ones):
    flags = balanced_flags(n, ratio, random.Random(0))
    assert len(flags) == n
    assert sum(flags) == ones
    assert sorted(flags) == [0] * (n - ones) + [1] * ones


def test_balanced_flags_rejects_bad_ratio():
    with pytest.raises(InvalidDesignError):
        balanced_flags(4, 1.2)


def test_balanced_flags_order_varies_with_seed():
    orders = {tuple(balanced_flags(12, 0.5, random.Random(seed))) for seed in range(20)}
    assert len(orders) > 1


def test_shuffle_does_not_mutate_input():
    items = list(range(10))
    shuffled = shuffle(items, random.Random(3))
    assert items == list(range(10))
    assert sorted(shuffled) == items


def test_shuffle_is_reproducible_with_seed():
    assert shuffle('abcdefg', random.Random(7)) == shuffle('abcdefg', random.Random(7))


def test_uniform_choice_empty_raises():
    with pytest.raises(EmptyInputError):
        uniform_choice([])


def test_uniform_choice_covers_all_items():
    rng = random.Random(11)
    seen = Counter(uniform_choice('abc', rng) for _ in range(300))
    assert set(seen) == {'a', 'b', 'c'}


# ────────────────────────────────────────────────────────────────────────────
# Probe side derivation
# ────────────────────────────────────────────────────────────────────────────


@pytest.mark.parametrize("condition, cue, flag, probe", [
    (EMOJI, LEFT, 1, LEFT),
    (EMOJI, LEFT, 0, RIGHT),
    (EMOJI, RIGHT, 1, RIGHT),
    (EMOJI, RIGHT, 0, LEFT),
    (COMPLEX, LEFT, 1, RIGHT),
    (COMPLEX, LEFT, 0, LEFT),
    (COMPLEX, RIGHT, 1, LEFT),
    (COMPLEX, RIGHT, 0, RIGHT),
])
def test_derive_probe_side(condition, cue, flag, probe):
    assert derive_probe_side(condition, cue, flag) == probe


# ────────────────────────────────────────────────────────────────────────────
# Trial generation
# ────────────────────────────────────────────────────────────────────────────


def test_make_trials_ten_trial_block_is_balanced():
    trials = make_trials(10, 0.6, 0.5, rng=random.Random(42))
    balance = analyze_trial_balance(trials)

    assert len(trials) == 10
    assert balance['condition_counts'] == {EMOJI: 5, COMPLEX: 5}
    # round(5 * 0.6) = 3 valid per condition
    assert balance['validity_counts'][EMOJI] == {'valid': 3, 'invalid': 2}
    assert balance['validity_counts'][COMPLEX] == {'valid': 3, 'invalid': 2}
    assert balance['same_counts'] == {1: 5, 0: 5}


@pytest.mark.parametrize("seed", range(25))
def test_make_trials_invariants(seed):
    trials = make_trials(12, 0.6, 0.5, rng=random.Random(seed))

    for i, tr in enumerate(trials):
        assert tr.trial == i + 1
        assert tr.memL != tr.memR
        assert tr.memL in MEM_POOL and tr.memR in MEM_POOL
        flag = 1 if tr.validity == VALID else 0
        assert tr.probeSide == derive_probe_side(tr.condition, tr.cueSide, flag)
        if tr.isSame == 1:
            assert tr.probeStim == (tr.memL if tr.probeSide == LEFT else tr.memR)
        else:
            assert tr.probeStim in MEM_POOL
            assert tr.probeStim not in (tr.memL, tr.memR)
        assert (tr.emojiPath, tr.stimPath) in CUE_PAIRS
        assert tr.emoji_fn == tr.emojiPath.split('/')[-1]


def test_make_trials_is_deterministic_for_a_seed():
    first = make_trials(8, rng=random.Random(99))
    second = make_trials(8, rng=random.Random(99))
    assert first == second


def test_make_trials_small_block_rounding():
    # n=2, ratio 0.6 -> one valid, one invalid in total across conditions
    trials = make_trials(2, 0.6, 0.5, rng=random.Random(5))
    balance = analyze_trial_balance(trials)
    assert balance['condition_counts'] == {EMOJI: 1, COMPLEX: 1}
    assert balance['validity_counts'][EMOJI]['valid'] == 1
    assert balance['validity_counts'][COMPLEX]['valid'] == 1


def test_make_trials_custom_pool():
    pool = ['a.png', 'b.png', 'c.png']
    trials = make_trials(6, rng=random.Random(1), mem_pool=pool)
    for tr in trials:
        if tr.isSame == 0:
            assert {tr.memL, tr.memR, tr.probeStim} == set(pool)


@pytest.mark.parametrize("seed", range(50))
def test_make_trials_repeated_pool_entries_count_once(seed):
    pool = ['a.png', 'a.png', 'b.png', 'c.png']
    for tr in make_trials(4, rng=random.Random(seed), mem_pool=pool):
        assert tr.memL != tr.memR
        if tr.isSame == 0:
            assert tr.probeStim not in (tr.memL, tr.memR)


@pytest.mark.parametrize("path, expected", [
    ('CueStimuli/anger.png', 'anger.png'),
    ('CueStimuli\\anger.png', 'anger.png'),
    ('anger.png', 'anger.png'),
])
def test_file_name(path, expected):
    assert file_name(path) == expected


@pytest.mark.parametrize("kwargs", [
    {'n_trials': 0},
    {'n_trials': 4, 'mem_pool': ['a.png', 'b.png']},
    {'n_trials': 4, 'mem_pool': ['a.png', 'a.png', 'b.png']},
    {'n_trials': 4, 'cue_pairs': []},
    {'n_trials': 4, 'validity_ratio': 1.5},
])
def test_make_trials_invalid_design(kwargs):
    with pytest.raises(InvalidDesignError):
        make_trials(rng=random.Random(0), **kwargs)
