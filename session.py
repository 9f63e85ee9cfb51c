"""
Session state machine.

Phase order:

    Preload -> Intake -> welcome -> procedure -> PracticeLoop -> formal_intro
    -> Connecting -> formalBlock1 -> break -> Connecting -> formalBlock2 -> end
    -> Finished

PracticeLoop repeats practice_intro -> Connecting -> practice block -> Evaluate
until the mean accuracy of the last practice block reaches the pass criterion;
a failed evaluation shows practice_fail and goes back to practice_intro.

The quit key during any instruction, connecting or probe stage ends the session
at once: the ledger is exported with the partial tag and nothing else runs.
Everything the session touches lives on a SessionContext; presenter, form,
preloader and writer are injected so the whole flow runs headless in tests.
"""
import random
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np
from psychopy import logging

from config import BLOCK_LABELS, EXPORT_TAGS, MESSAGES, INSTRUCTION_IMAGES, MEM_POOL, CUE_PAIRS
from ledger import Ledger, Participant, SessionRecord, save_ledger
from responses import evaluate_probe, is_quit, normalize_key
from stages import (build_trial_stages, connecting_stage, instruction_stage, with_feedback,
                    COMMIT, FEEDBACK, PROBE, SENDING)
from trial_sequences import generate_block

# Phase kinds
PRELOAD = 'preload'
INTAKE = 'intake'
INSTRUCTION = 'instruction'
PRACTICE_LOOP = 'practice_loop'
CONNECTING = 'connecting'
BLOCK = 'block'
FINISHED = 'finished'

# Practice loop states
PRACTICE_INTRO = 'practice_intro'
PRACTICE_CONNECTING = 'practice_connecting'
PRACTICE_BLOCK = 'practice_block'
PRACTICE_EVALUATE = 'practice_evaluate'
PRACTICE_FAIL = 'practice_fail'
PRACTICE_EXIT = 'practice_exit'

# (state, evaluation outcome) -> next state; outcome is None for unconditional edges
PRACTICE_TRANSITIONS = {
    (PRACTICE_INTRO, None): PRACTICE_CONNECTING,
    (PRACTICE_CONNECTING, None): PRACTICE_BLOCK,
    (PRACTICE_BLOCK, None): PRACTICE_EVALUATE,
    (PRACTICE_EVALUATE, 'pass'): PRACTICE_EXIT,
    (PRACTICE_EVALUATE, 'fail'): PRACTICE_FAIL,
    (PRACTICE_FAIL, None): PRACTICE_INTRO,
}


class InterruptSignal(Exception):
    """Quit key received; unwinds the running phase back to run_session."""

    def __init__(self, stage_kind):
        super().__init__(f"Quit key pressed during {stage_kind} stage")
        self.stage_kind = stage_kind


@dataclass(frozen=True)
class Phase:
    kind: str
    name: str = ''
    n_trials: int = 0
    practice: bool = False


@dataclass
class SessionContext:
    """
    Everything one session reads and writes.

    Attributes:
      - params: validated experiment parameters (config.prepare_experiment_parameters)
      - presenter: object with show(stage) -> ResponseEvent | None and show_message(text)
      - writer: callable(filename, text) storing the export
      - form: callable() -> Participant
      - preloader: callable(paths) -> list of paths that could not be loaded
      - rng: source of randomness for trial generation and stage durations
      - now: callable() -> datetime used for the export timestamp (default: current UTC time)
    """
    params: dict
    presenter: object
    writer: Callable[[str, str], None]
    form: Callable[[], Participant] = Participant
    preloader: Optional[Callable] = None
    rng: random.Random = field(default_factory=random.Random)
    now: Optional[Callable] = None
    participant: Participant = field(default_factory=Participant)
    ledger: Ledger = field(default_factory=Ledger)
    practice_rounds: int = 0
    practice_accuracies: list = field(default_factory=list)


@dataclass(frozen=True)
class SessionOutcome:
    tag: Optional[str]
    filename: Optional[str]
    n_records: int
    practice_rounds: int
    completed: bool
    interrupted_at: Optional[str] = None


def build_phase_plan(params):
    """Top-level phases in presentation order (Finished is implied after the last one)."""
    return [
        Phase(PRELOAD),
        Phase(INTAKE),
        Phase(INSTRUCTION, 'welcome'),
        Phase(INSTRUCTION, 'procedure'),
        Phase(PRACTICE_LOOP, BLOCK_LABELS['practice'], params['n_practice'], practice=True),
        Phase(INSTRUCTION, 'formal_intro'),
        Phase(CONNECTING),
        Phase(BLOCK, BLOCK_LABELS['formal_1'], params['n_block1']),
        Phase(INSTRUCTION, 'break'),
        Phase(CONNECTING),
        Phase(BLOCK, BLOCK_LABELS['formal_2'], params['n_block2']),
        Phase(INSTRUCTION, 'end'),
    ]


def preload_list():
    """All images the session may show: instructions, memory pool and cue pairs."""
    paths = list(INSTRUCTION_IMAGES.values()) + list(MEM_POOL)
    for emoji, stim in CUE_PAIRS:
        paths.extend([emoji, stim])
    return paths


def run_stage(ctx, stage):
    """
    Hand one stage to the presenter and filter its response.

    Keys the stage does not accept, and responses arriving after the stage
    duration, are dropped. The quit key raises InterruptSignal, except on the
    probe, where it is passed on to the response evaluator.

    Returns:
    ResponseEvent or None
    """
    event = ctx.presenter.show(stage)
    if event is None or not stage.accepts_input:
        return None
    accepted = {normalize_key(k) for k in stage.keys}
    if normalize_key(event.key) not in accepted:
        return None
    if stage.duration is not None and event.rt is not None and event.rt > stage.duration:
        return None
    if stage.kind != PROBE and is_quit(event, ctx.params['quit_key']):
        raise InterruptSignal(stage.kind)
    return event


def run_trial(ctx, trial, block_label, practice):
    """
    Run the stage sequence of one trial and append its record to the ledger.
    """
    params = ctx.params
    result = None
    send_dur = None

    for stage in build_trial_stages(trial, params, ctx.rng, block_label, practice):
        if stage.kind == COMMIT:
            ctx.ledger.append(SessionRecord.from_trial(ctx.participant, trial, block_label,
                                                       practice, result, send_dur))
            continue

        if stage.kind == FEEDBACK:
            stage = with_feedback(stage, result.acc)

        event = run_stage(ctx, stage)

        if stage.kind == SENDING:
            send_dur = stage.data['sendDur']
        elif stage.kind == PROBE:
            result = evaluate_probe(event, trial.isSame, params['same_key'],
                                    params['diff_key'], params['quit_key'])
            if result.is_quit:
                raise InterruptSignal(PROBE)
            if result.timed_out:
                logging.data(f"{block_label} trial {trial.trial}: no response")


def run_block(ctx, block_label, n_trials, practice=False):
    """
    Generate a fresh block and run all of its trials.

    Generation errors are raised before the first stage is shown.
    """
    trials = generate_block(block_label, n_trials, ctx.params, ctx.rng)
    print(f"Starting block {block_label} ({n_trials} trials)")
    logging.exp(f"Block {block_label} start")
    for trial in trials:
        run_trial(ctx, trial, block_label, practice)
    logging.exp(f"Block {block_label} end")


def practice_passed(records, criterion):
    """
    Evaluate one practice block.

    Returns:
    tuple: (passed, mean accuracy)
    """
    if not records:
        return False, 0.0
    mean_acc = float(np.mean([r.acc for r in records]))
    return mean_acc >= criterion, mean_acc


def run_practice_loop(ctx, phase):
    """Step the practice states until the evaluation passes."""
    params = ctx.params
    max_rounds = params.get('max_practice_rounds')
    state = PRACTICE_INTRO

    while state != PRACTICE_EXIT:
        outcome = None
        logging.exp(f"Practice state: {state}")

        if state in (PRACTICE_INTRO, PRACTICE_FAIL):
            run_stage(ctx, instruction_stage(state, params))
        elif state == PRACTICE_CONNECTING:
            run_stage(ctx, connecting_stage(params, ctx.rng))
        elif state == PRACTICE_BLOCK:
            ctx.practice_rounds += 1
            run_block(ctx, phase.name, phase.n_trials, practice=True)
        elif state == PRACTICE_EVALUATE:
            # Only the round just run counts; earlier rounds stay in the ledger
            round_records = ctx.ledger.last(phase.n_trials, block=phase.name)
            passed, mean_acc = practice_passed(round_records, params['pass_criterion'])
            ctx.practice_accuracies.append(mean_acc)
            logging.exp(f"Practice round {ctx.practice_rounds}: mean accuracy {mean_acc:.2f} "
                        f"(criterion {params['pass_criterion']:.2f}) -> "
                        f"{'pass' if passed else 'fail'}")
            if not passed and max_rounds is not None and ctx.practice_rounds >= max_rounds:
                logging.warning(f"Practice not passed after {max_rounds} rounds; "
                                f"continuing to the formal blocks")
                passed = True
            outcome = 'pass' if passed else 'fail'

        state = PRACTICE_TRANSITIONS[(state, outcome)]


def _run_phase(ctx, phase):
    params = ctx.params
    logging.exp(f"Phase: {phase.kind} {phase.name}".rstrip())

    if phase.kind == PRELOAD:
        missing = list(ctx.preloader(preload_list())) if ctx.preloader else []
        if missing:
            for path in missing:
                logging.error(f"Could not load stimulus: {path}")
            return False
    elif phase.kind == INTAKE:
        ctx.participant = ctx.form()
        logging.exp(f"Participant: {ctx.participant}")
    elif phase.kind == INSTRUCTION:
        run_stage(ctx, instruction_stage(phase.name, params))
    elif phase.kind == PRACTICE_LOOP:
        run_practice_loop(ctx, phase)
    elif phase.kind == CONNECTING:
        run_stage(ctx, connecting_stage(params, ctx.rng))
    elif phase.kind == BLOCK:
        run_block(ctx, phase.name, phase.n_trials, practice=phase.practice)
    else:
        raise ValueError(f"Unknown phase kind: {phase.kind}")
    return True


def _export(ctx, tag):
    now = ctx.now() if ctx.now else None
    return save_ledger(ctx.ledger, ctx.participant, tag, ctx.writer, now=now,
                       experiment_name=ctx.params.get('experiment_name'))


def run_session(ctx, plan=None):
    """
    Run the whole session and export the ledger exactly once.

    Parameters:
    ctx (SessionContext): Session collaborators and state
    plan (list): Phases to run (default: build_phase_plan(ctx.params))

    Returns:
    SessionOutcome
    """
    plan = build_phase_plan(ctx.params) if plan is None else plan

    try:
        for phase in plan:
            if not _run_phase(ctx, phase):
                ctx.presenter.show_message(MESSAGES['preload_failed'])
                return SessionOutcome(tag=None, filename=None, n_records=0,
                                      practice_rounds=0, completed=False,
                                      interrupted_at=PRELOAD)
    except InterruptSignal as sig:
        logging.warning(f"Session interrupted: {sig}")
        filename = _export(ctx, EXPORT_TAGS['partial'])
        ctx.presenter.show_message(MESSAGES['terminated'])
        return SessionOutcome(tag=EXPORT_TAGS['partial'], filename=filename,
                              n_records=len(ctx.ledger), practice_rounds=ctx.practice_rounds,
                              completed=False, interrupted_at=sig.stage_kind)

    logging.exp(f"Phase: {FINISHED}")
    filename = _export(ctx, EXPORT_TAGS['complete'])
    ctx.presenter.show_message(MESSAGES['finished'])
    return SessionOutcome(tag=EXPORT_TAGS['complete'], filename=filename,
                          n_records=len(ctx.ledger), practice_rounds=ctx.practice_rounds,
                          completed=True)
