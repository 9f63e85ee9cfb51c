"""
Shared fakes for the session tests.

The PsychoPy window is replaced by ScriptedPresenter, which answers each stage
from a script instead of waiting for real key presses, and RecordingWriter
keeps exports in memory.
"""
from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from config import prepare_experiment_parameters
from ledger import Participant
from responses import ResponseEvent
from session import SessionContext

FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53, tzinfo=timezone.utc)


class ScriptedPresenter:
    """
    Presenter that answers probes from a script.

    probe_script items:
      - 'correct' / 'wrong': the key that scores 1 / 0 for the probe
      - 'escape': quit key
      - None: no response (timeout)
      - ResponseEvent: returned as is
    Probes beyond the script are answered correctly. Instruction stages get
    the continue key. `quit_on` = (stage kind, occurrence) presses escape on
    the n-th (1-based) stage of that kind.
    """

    def __init__(self, probe_script=None, quit_on=None, rt=0.45):
        self.probe_script = list(probe_script or [])
        self.quit_on = quit_on
        self.rt = rt
        self.shown = []
        self.messages = []
        self.kind_counts = {}
        self.on_show = None

    def show(self, stage):
        self.shown.append(stage)
        self.kind_counts[stage.kind] = self.kind_counts.get(stage.kind, 0) + 1
        if self.on_show is not None:
            self.on_show(stage)

        if self.quit_on == (stage.kind, self.kind_counts[stage.kind]):
            return ResponseEvent('escape', self.rt)

        if stage.kind == 'instruction':
            return ResponseEvent('space', 1.0)
        if stage.kind != 'probe':
            return None

        answer = self.probe_script.pop(0) if self.probe_script else 'correct'
        if answer is None or isinstance(answer, ResponseEvent):
            return answer
        if answer == 'escape':
            return ResponseEvent('escape', self.rt)
        is_same = stage.data['isSame']
        correct_key = 'j' if is_same == 1 else 'f'
        wrong_key = 'f' if is_same == 1 else 'j'
        return ResponseEvent(correct_key if answer == 'correct' else wrong_key, self.rt)

    def show_message(self, text):
        self.messages.append(text)

    def stages_of(self, kind):
        return [s for s in self.shown if s.kind == kind]

    def instruction_names(self):
        return [s.data['name'] for s in self.stages_of('instruction')]


class RecordingWriter:
    def __init__(self):
        self.files = []

    def __call__(self, filename, text):
        self.files.append((filename, text))


@pytest.fixture
def params():
    return prepare_experiment_parameters()


@pytest.fixture
def participant():
    return Participant(name='Li Wei', birthdate='2001-05-04', gender='F', handedness='Right')


@pytest.fixture
def writer():
    return RecordingWriter()


@pytest.fixture
def make_context(params, participant, writer):
    def _make(presenter, **overrides):
        session_params = dict(params)
        session_params.update(overrides.pop('params', {}))
        return SessionContext(
            params=session_params,
            presenter=presenter,
            writer=writer,
            form=lambda: participant,
            preloader=overrides.pop('preloader', lambda paths: []),
            rng=random.Random(overrides.pop('seed', 1234)),
            now=lambda: FIXED_NOW,
        )
    return _make
