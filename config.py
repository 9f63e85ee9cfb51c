"""Configuration for the emoji social cue memory experiment: stimuli, keys and timing"""

# Stimulus folders (relative to the experiment directory)
PATHS = {
    'instruction': 'InstructionImages',
    'memory': 'MemoryStimuli',
    'cue': 'CueStimuli',
}

# Stimulus identifiers are '/'-separated on every platform; they end up in the export
# Memory stimuli (7)
MEM_POOL = [
    f"{PATHS['memory']}/{fn}"
    for fn in ['stim_0089.png', 'stim_0095.png', 'stim_0307.png', 'stim_0395.png',
               'stim_0405.png', 'stim_0652.png', 'stim_0797.png']
]

# Cue pairs: (emoji image, matched complex image)
CUE_PAIRS = [
    (f"{PATHS['cue']}/{emoji}", f"{PATHS['cue']}/{stim}")
    for emoji, stim in [
        ('anger.png', 'stim_0001_anger.png'),
        ('calmness.png', 'stim_circular-041_calmness.png'),
        ('disgust.png', 'stim_dim1-074_disgust.png'),
        ('fear.png', 'stim_dim2-fear.png'),
        ('happiness.png', 'stim_0262_happiness.png'),
        ('sadness.png', 'stim_0806_sadness.png'),
        ('surprise.png', 'stim_0889_surprise.png'),
    ]
]

# Full-screen instruction images
INSTRUCTION_IMAGES = {
    name: f"{PATHS['instruction']}/{name}.png"
    for name in ['welcome', 'procedure', 'practice_intro', 'practice_fail',
                 'formal_intro', 'break', 'end']
}

# Export column order
ORDERED_FIELDS = [
    'name', 'birthdate', 'gender', 'handedness',
    'block', 'trial', 'isPractice',
    'condition', 'validity', 'cueSide', 'probeSide', 'isSame',
    'memL', 'memR', 'emoji_fn', 'stim_fn', 'probeStim',
    'respKey', 'rt', 'acc', 'sendDur',
]

# Block labels used in the export
BLOCK_LABELS = {
    'practice': 'practice',
    'formal_1': 'formalBlock1',
    'formal_2': 'formalBlock2',
}

EXPORT_TAGS = {
    'complete': 'ordered',
    'partial': 'ordered_partial',
}

# On-screen text
MESSAGES = {
    'feedback_correct': "恭喜你答对了！",
    'feedback_incorrect': "很遗憾，你答错了。",
    'sending': "对方正在发送",
    'connecting': "正在与对方连接...\n\n请稍候",
    'finished': "实验已结束，数据已下载。\n\n请将 CSV 文件发送给实验员。",
    'terminated': "已退出（已下载当前数据）。",
    'preload_failed': "资源加载失败，请检查文件后重试。",
}

# Display geometry (pixels)
DISPLAY = {
    'pos_left_x': -270,
    'pos_right_x': 270,
    'pos_y': 0,
    'img_size': 156,
    'window_size': (1200, 900),
    'background': (128, 128, 128),
}

# Default experiment parameters (all durations in seconds)
DEFAULT_PARAMS = {
    'experiment_name': 'EmojiSocial',
    # Response keys
    'same_key': 'j',
    'diff_key': 'f',
    'quit_key': 'escape',
    'continue_key': 'space',
    # Trial counts
    'n_practice': 2,
    'n_block1': 3,
    'n_block2': 3,
    # Practice criterion (mean accuracy over the last practice block)
    'pass_criterion': 0.8,
    'max_practice_rounds': None,  # None repeats practice until passed
    # Counterbalancing ratios
    'validity_ratio': 0.6,
    'condition_ratio': 0.5,
    'same_ratio': 0.5,
    # Stage timing
    'fix_dur': 1.0,
    'mem_dur': 0.5,
    'cue_dur': 1.0,
    'probe_max_rt': 3.0,
    'feedback_dur': 0.6,
    'send_min': 0.2,
    'send_max': 1.5,
    'connect_min': 5.0,
    'connect_max': 15.0,
}

_DURATION_KEYS = ['fix_dur', 'mem_dur', 'cue_dur', 'probe_max_rt', 'feedback_dur',
                  'send_min', 'send_max', 'connect_min', 'connect_max']
_RATIO_KEYS = ['pass_criterion', 'validity_ratio', 'condition_ratio', 'same_ratio']
_COUNT_KEYS = ['n_practice', 'n_block1', 'n_block2']


def prepare_experiment_parameters(overrides=None):
    """
    Build the parameter set for one session.

    Parameters:
    overrides (dict): Values replacing the defaults (e.g. shortened timing for a
        test run)

    Returns:
    dict: Validated parameters

    Raises:
    ValueError: If a duration is negative, a range is reversed, a ratio lies
        outside [0, 1] or a trial count is not a positive integer
    """
    params = DEFAULT_PARAMS.copy()
    if overrides:
        unknown = set(overrides) - set(DEFAULT_PARAMS)
        if unknown:
            raise ValueError(f"Unknown parameters: {sorted(unknown)}")
        params.update(overrides)

    for key in _DURATION_KEYS:
        if params[key] < 0:
            raise ValueError(f"{key} must be >= 0, got {params[key]}")
    for low, high in [('send_min', 'send_max'), ('connect_min', 'connect_max')]:
        if params[low] > params[high]:
            raise ValueError(f"{low} ({params[low]}) is larger than {high} ({params[high]})")
    for key in _RATIO_KEYS:
        if not 0 <= params[key] <= 1:
            raise ValueError(f"{key} must lie in [0, 1], got {params[key]}")
    for key in _COUNT_KEYS:
        if int(params[key]) != params[key] or params[key] < 1:
            raise ValueError(f"{key} must be a positive integer, got {params[key]}")
    rounds = params['max_practice_rounds']
    if rounds is not None and rounds < 1:
        raise ValueError(f"max_practice_rounds must be None or >= 1, got {rounds}")

    keys = [params['same_key'], params['diff_key'], params['quit_key']]
    if len({k.lower() for k in keys}) != len(keys):
        raise ValueError(f"Response keys must be distinct, got {keys}")

    return params
