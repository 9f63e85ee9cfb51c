"""
Scoring of probe responses.

A presenter returns a ResponseEvent (or None when the response window ran out);
evaluate_probe turns it into the respKey/rt/acc triple stored for the trial.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ResponseEvent:
    """A key press captured by the presenter. `rt` is seconds since stage onset."""
    key: str
    rt: float


@dataclass(frozen=True)
class ProbeResult:
    resp_key: str
    rt: Optional[float]
    acc: int
    is_quit: bool = False

    @property
    def timed_out(self):
        return self.resp_key == ''


def normalize_key(key):
    """Lower-case key name; None or blank means no response."""
    if key is None:
        return ''
    return str(key).strip().lower()


def is_quit(event, quit_key='escape'):
    return event is not None and normalize_key(event.key) == normalize_key(quit_key)


def evaluate_probe(event, is_same, same_key='j', diff_key='f', quit_key='escape'):
    """
    Score a probe response.

    Parameters:
    event (ResponseEvent): Captured response, or None on timeout
    is_same (int): 1 if the probe matches the memorised item at its side
    same_key, diff_key, quit_key (str): Response key names

    Returns:
    ProbeResult: acc is 1 only for the same key on a same trial or the
        different key on a different trial. A timeout scores 0 with rt None.
        The quit key returns a result flagged is_quit instead of a score.
    """
    if event is None:
        return ProbeResult(resp_key='', rt=None, acc=0)

    key = normalize_key(event.key)
    if key == normalize_key(quit_key):
        return ProbeResult(resp_key=key, rt=event.rt, acc=0, is_quit=True)
    if not key:
        return ProbeResult(resp_key='', rt=None, acc=0)

    acc = 0
    if is_same == 1 and key == normalize_key(same_key):
        acc = 1
    elif is_same == 0 and key == normalize_key(diff_key):
        acc = 1
    return ProbeResult(resp_key=key, rt=event.rt, acc=acc)
