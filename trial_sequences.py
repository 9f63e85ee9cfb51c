# Imports
import math
import random
from dataclasses import dataclass

from psychopy import logging

from config import MEM_POOL, CUE_PAIRS, DEFAULT_PARAMS

LEFT = 'left'
RIGHT = 'right'
EMOJI = 'emoji'
COMPLEX = 'complexStimulus'
VALID = 'valid'
INVALID = 'invalid'


class EmptyInputError(ValueError):
    """Raised when a random draw is requested from an empty collection."""


class InvalidDesignError(ValueError):
    """Raised when a block cannot be generated from the requested design."""


@dataclass(frozen=True)
class TrialSpec:
    """One generated trial. `trial` is the 1-based position inside its block."""
    trial: int
    memL: str
    memR: str
    cueSide: str
    condition: str
    validity: str
    probeSide: str
    isSame: int
    probeStim: str
    emojiPath: str
    stimPath: str
    emoji_fn: str
    stim_fn: str


def _rng(rng):
    return rng if rng is not None else random.Random()


def file_name(path):
    """Last component of a '/'-separated stimulus identifier."""
    return path.replace('\\', '/').rsplit('/', 1)[-1]


def round_half_away(x):
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(math.copysign(math.floor(abs(x) + 0.5), x))


def uniform_choice(items, rng=None):
    """Return one element of `items`, each with equal probability."""
    items = list(items)
    if not items:
        raise EmptyInputError("Cannot choose from an empty collection")
    return items[_rng(rng).randrange(len(items))]


def shuffle(items, rng=None):
    """Return a Fisher-Yates shuffled copy of `items`; the input is left untouched."""
    rng = _rng(rng)
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def balanced_flags(n, ratio_of_ones, rng=None):
    """
    Build a shuffled 0/1 array with exactly round(n * ratio_of_ones) ones.

    Rounding is half away from zero, so for small n the realised ratio is only
    approximate (n=2, ratio=0.6 gives one 1 and one 0). Counterbalancing across
    blocks relies on this exact rule.

    Parameters:
    n (int): Length of the array
    ratio_of_ones (float): Target proportion of ones in [0, 1]
    rng (random.Random): Source of randomness

    Returns:
    list: Shuffled list of ints
    """
    if n < 0:
        raise InvalidDesignError(f"Flag count must be >= 0, got {n}")
    if not 0 <= ratio_of_ones <= 1:
        raise InvalidDesignError(f"Ratio must lie in [0, 1], got {ratio_of_ones}")
    n_ones = round_half_away(n * ratio_of_ones)
    return shuffle([1] * n_ones + [0] * (n - n_ones), rng)


def opposite(side):
    return RIGHT if side == LEFT else LEFT


def derive_probe_side(condition, cue_side, valid_flag):
    """
    Probe side from the cue: an emoji cue is valid when the probe follows it,
    a complex-image cue is valid when the probe appears on the other side.
    """
    if condition == EMOJI:
        return cue_side if valid_flag == 1 else opposite(cue_side)
    return opposite(cue_side) if valid_flag == 1 else cue_side


def make_trials(n_trials, validity_ratio=0.6, condition_ratio=0.5, rng=None,
                mem_pool=None, cue_pairs=None, same_ratio=None):
    """
    Generate the counterbalanced trial list for one block.

    Condition, validity (within each condition) and same/different flags are
    each taken from their own pre-shuffled balanced flag array, so the counts
    are fixed for the block while the order is random.

    Parameters:
    n_trials (int): Number of trials in the block
    validity_ratio (float): Proportion of valid trials within each condition
    condition_ratio (float): Proportion of emoji-cue trials
    rng (random.Random): Source of randomness; pass a seeded instance for a
        reproducible block
    mem_pool (list): Memory stimulus pool (default: config.MEM_POOL)
    cue_pairs (list): (emoji, complex image) pairs (default: config.CUE_PAIRS)
    same_ratio (float): Proportion of same-probe trials (default 0.5)

    Returns:
    list: TrialSpec objects in presentation order

    Raises:
    InvalidDesignError: If the trial count, ratios or stimulus tables cannot
        yield a valid block
    """
    rng = _rng(rng)
    # Duplicate entries would let both memory items be the same image
    mem_pool = list(dict.fromkeys(MEM_POOL if mem_pool is None else mem_pool))
    cue_pairs = list(CUE_PAIRS if cue_pairs is None else cue_pairs)
    if same_ratio is None:
        same_ratio = DEFAULT_PARAMS['same_ratio']

    if n_trials < 1:
        raise InvalidDesignError(f"A block needs at least one trial, got {n_trials}")
    if len(mem_pool) < 3:
        raise InvalidDesignError(
            f"Memory pool needs at least 3 distinct items (2 to memorise, 1 for "
            f"different probes), got {len(mem_pool)}")
    if not cue_pairs:
        raise InvalidDesignError("Cue pair table is empty")

    cond_flags = balanced_flags(n_trials, condition_ratio, rng)  # 1=emoji, 0=complexStimulus
    n_emoji = sum(cond_flags)
    n_complex = n_trials - n_emoji

    valid_emoji = balanced_flags(n_emoji, validity_ratio, rng)  # 1=valid
    valid_complex = balanced_flags(n_complex, validity_ratio, rng)
    same_flags = balanced_flags(n_trials, same_ratio, rng)  # 1=same

    idx_emoji = 0
    idx_complex = 0
    trials = []

    for i in range(n_trials):
        mem_l, mem_r = shuffle(mem_pool, rng)[:2]
        if rng.random() >= 0.5:
            mem_l, mem_r = mem_r, mem_l

        emoji_path, stim_path = uniform_choice(cue_pairs, rng)
        cue_side = LEFT if rng.random() < 0.5 else RIGHT

        if cond_flags[i] == 1:
            condition = EMOJI
            valid_flag = valid_emoji[idx_emoji]
            idx_emoji += 1
        else:
            condition = COMPLEX
            valid_flag = valid_complex[idx_complex]
            idx_complex += 1

        probe_side = derive_probe_side(condition, cue_side, valid_flag)
        is_same = same_flags[i]

        if is_same == 1:
            # Location binding: the probe is the item shown at the probed side
            probe_stim = mem_l if probe_side == LEFT else mem_r
        else:
            probe_stim = uniform_choice([s for s in mem_pool if s not in (mem_l, mem_r)], rng)

        trials.append(TrialSpec(
            trial=i + 1,
            memL=mem_l,
            memR=mem_r,
            cueSide=cue_side,
            condition=condition,
            validity=VALID if valid_flag == 1 else INVALID,
            probeSide=probe_side,
            isSame=is_same,
            probeStim=probe_stim,
            emojiPath=emoji_path,
            stimPath=stim_path,
            emoji_fn=file_name(emoji_path),
            stim_fn=file_name(stim_path),
        ))

    return trials


def analyze_trial_balance(trials):
    """
    Count the counterbalanced dimensions of a block.

    Parameters:
    trials (list): TrialSpec objects from make_trials

    Returns:
    dict: Counts per condition, validity within condition, same/different and cue side
    """
    summary = {
        'n_trials': len(trials),
        'condition_counts': {EMOJI: 0, COMPLEX: 0},
        'validity_counts': {EMOJI: {VALID: 0, INVALID: 0}, COMPLEX: {VALID: 0, INVALID: 0}},
        'same_counts': {1: 0, 0: 0},
        'cue_side_counts': {LEFT: 0, RIGHT: 0},
    }
    for tr in trials:
        summary['condition_counts'][tr.condition] += 1
        summary['validity_counts'][tr.condition][tr.validity] += 1
        summary['same_counts'][tr.isSame] += 1
        summary['cue_side_counts'][tr.cueSide] += 1
    return summary


def generate_block(label, n_trials, params, rng=None):
    """
    Generate a fresh trial list for a block and log its balance.

    Parameters:
    label (str): Block label used in the export (e.g. 'practice')
    n_trials (int): Number of trials
    params (dict): Experiment parameters (ratios)
    rng (random.Random): Source of randomness

    Returns:
    list: TrialSpec objects
    """
    trials = make_trials(
        n_trials,
        validity_ratio=params['validity_ratio'],
        condition_ratio=params['condition_ratio'],
        rng=rng,
        same_ratio=params.get('same_ratio'),
    )
    balance = analyze_trial_balance(trials)
    logging.info(f"Generated block {label}: {n_trials} trials, "
                 f"conditions {balance['condition_counts']}, "
                 f"validity {balance['validity_counts']}, "
                 f"same/different {balance['same_counts']}")
    return trials
