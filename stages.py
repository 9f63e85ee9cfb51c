"""
Stage descriptions for one trial and for the screens between blocks.

A Stage is a plain description (what to show, for how long, which keys end it);
drawing it is left to the presenter in experiment.py. Each trial expands to

    fixation -> memory -> sending -> cue -> probe [-> feedback] -> commit
"""
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from config import INSTRUCTION_IMAGES, MESSAGES
from trial_sequences import LEFT, RIGHT

FIXATION = 'fixation'
MEMORY = 'memory'
SENDING = 'sending'
CUE = 'cue'
PROBE = 'probe'
FEEDBACK = 'feedback'
COMMIT = 'commit'
CONNECTING = 'connecting'
INSTRUCTION = 'instruction'


@dataclass(frozen=True)
class Stage:
    """
    Attributes:
      - kind: one of the stage names above
      - duration: seconds; None waits for an accepted key without a time limit
      - keys: accepted keys (empty: the stage only times out)
      - images: (path, side) pairs; side is 'left', 'right' or 'center'
      - text: text drawn at the centre (fixation cross, messages)
      - data: bookkeeping values carried to the trial record
    """
    kind: str
    duration: Optional[float]
    keys: Tuple[str, ...] = ()
    images: Tuple[Tuple[str, str], ...] = ()
    text: str = ''
    data: dict = field(default_factory=dict)

    @property
    def accepts_input(self):
        return bool(self.keys)


def fixation_stage(params):
    return Stage(FIXATION, params['fix_dur'], text='+')


def memory_stage(trial, params):
    return Stage(MEMORY, params['mem_dur'],
                 images=((trial.memL, LEFT), (trial.memR, RIGHT)), text='+')


def sending_stage(params, rng):
    send_dur = rng.uniform(params['send_min'], params['send_max'])
    return Stage(SENDING, send_dur, text=MESSAGES['sending'], data={'sendDur': send_dur})


def cue_stage(trial, params):
    # Emoji at the cue side, its matched complex image opposite
    if trial.cueSide == LEFT:
        images = ((trial.emojiPath, LEFT), (trial.stimPath, RIGHT))
    else:
        images = ((trial.stimPath, LEFT), (trial.emojiPath, RIGHT))
    return Stage(CUE, params['cue_dur'], images=images, text='+')


def probe_stage(trial, params):
    return Stage(PROBE, params['probe_max_rt'],
                 keys=(params['same_key'], params['diff_key'], params['quit_key']),
                 images=((trial.probeStim, trial.probeSide),), text='+',
                 data={'isSame': trial.isSame})


def feedback_stage(params):
    # Text is filled in once the probe has been scored
    return Stage(FEEDBACK, params['feedback_dur'])


def commit_stage(trial, block_label, practice):
    return Stage(COMMIT, 0.0, data={'block': block_label, 'trial': trial.trial,
                                    'isPractice': 1 if practice else 0})


def feedback_text(acc):
    return MESSAGES['feedback_correct'] if acc == 1 else MESSAGES['feedback_incorrect']


def with_feedback(stage, acc):
    """Return the feedback stage with the text for the scored probe."""
    return replace(stage, text=feedback_text(acc))


def build_trial_stages(trial, params, rng, block_label, practice=False):
    """
    Expand one trial into its ordered stage list.

    Parameters:
    trial (TrialSpec): Generated trial
    params (dict): Experiment parameters (timing and keys)
    rng (random.Random): Source for the sending duration
    block_label (str): Block label written to the record
    practice (bool): Adds the feedback stage

    Returns:
    list: Stage objects in presentation order
    """
    stages = [
        fixation_stage(params),
        memory_stage(trial, params),
        sending_stage(params, rng),
        cue_stage(trial, params),
        probe_stage(trial, params),
    ]
    if practice:
        stages.append(feedback_stage(params))
    stages.append(commit_stage(trial, block_label, practice))
    return stages


def connecting_stage(params, rng):
    duration = rng.uniform(params['connect_min'], params['connect_max'])
    return Stage(CONNECTING, duration, keys=(params['quit_key'],),
                 text=MESSAGES['connecting'], data={'dur': duration})


def instruction_stage(name, params):
    return Stage(INSTRUCTION, None, keys=(params['continue_key'], params['quit_key']),
                 images=((INSTRUCTION_IMAGES[name], 'center'),), data={'name': name})


def fit_size(image_size, bounds):
    """
    Scale an image to fit inside `bounds` without changing its aspect ratio.

    Parameters:
    image_size (tuple): Native (width, height) of the image
    bounds (tuple): Available (width, height), e.g. the window size

    Returns:
    tuple: (width, height) of the largest fitting size
    """
    img_w, img_h = image_size
    max_w, max_h = bounds
    if img_w <= 0 or img_h <= 0:
        raise ValueError(f"Image size must be positive, got {image_size}")
    scale = min(max_w / img_w, max_h / img_h)
    return img_w * scale, img_h * scale
