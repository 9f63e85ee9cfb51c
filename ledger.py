"""
Trial records and the session ledger.

The ledger is append-only: one SessionRecord per completed trial, in completion
order. It is written out once per session as an ordered CSV.
"""
import re
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import List, Optional

import pandas as pd
from psychopy import logging

from config import ORDERED_FIELDS, DEFAULT_PARAMS


@dataclass(frozen=True)
class Participant:
    name: str = ''
    birthdate: str = ''
    gender: str = ''
    handedness: str = ''


@dataclass(frozen=True)
class SessionRecord:
    name: str
    birthdate: str
    gender: str
    handedness: str
    block: str
    trial: int
    isPractice: int
    condition: str
    validity: str
    cueSide: str
    probeSide: str
    isSame: int
    memL: str
    memR: str
    emoji_fn: str
    stim_fn: str
    probeStim: str
    respKey: str
    rt: Optional[float]
    acc: int
    sendDur: Optional[float]

    @classmethod
    def from_trial(cls, participant, trial, block, is_practice, result, send_dur):
        """
        Combine participant, trial and scored probe into one export row.

        Parameters:
        participant (Participant): Intake fields
        trial (TrialSpec): The generated trial
        block (str): Block label
        is_practice (bool): Practice block flag
        result (ProbeResult): Scored probe response
        send_dur (float): Duration of the sending stage in seconds
        """
        return cls(
            name=participant.name,
            birthdate=participant.birthdate,
            gender=participant.gender,
            handedness=participant.handedness,
            block=block,
            trial=trial.trial,
            isPractice=1 if is_practice else 0,
            condition=trial.condition,
            validity=trial.validity,
            cueSide=trial.cueSide,
            probeSide=trial.probeSide,
            isSame=trial.isSame,
            memL=trial.memL,
            memR=trial.memR,
            emoji_fn=trial.emoji_fn,
            stim_fn=trial.stim_fn,
            probeStim=trial.probeStim,
            respKey=result.resp_key,
            rt=result.rt,
            acc=result.acc,
            sendDur=send_dur,
        )


class Ledger:
    """Append-only sequence of SessionRecord."""

    def __init__(self):
        self._records: List[SessionRecord] = []

    def append(self, record):
        if not isinstance(record, SessionRecord):
            raise TypeError(f"Ledger accepts SessionRecord, got {type(record).__name__}")
        self._records.append(record)
        logging.data(f"Record {record.block} trial {record.trial}: "
                     f"resp={record.respKey or '-'} rt={record.rt} acc={record.acc}")

    @property
    def records(self):
        return tuple(self._records)

    def last(self, n, block=None):
        """The most recent `n` records, optionally only those of one block label."""
        records = [r for r in self._records if block is None or r.block == block]
        return records[-n:] if n > 0 else []

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def to_dataframe(self):
        return pd.DataFrame([asdict(r) for r in self._records], columns=ORDERED_FIELDS)


def rows_to_csv(ledger):
    """Ordered CSV text (header + one row per record, standard quoting)."""
    return ledger.to_dataframe().to_csv(index=False, lineterminator='\n', na_rep='')


def sanitize_name(name):
    """Whitespace runs become underscores; an empty name becomes NA."""
    safe = re.sub(r'\s+', '_', (name or '').strip())
    safe = re.sub(r'[\\/]', '_', safe)
    return safe or 'NA'


def export_filename(participant, tag, now=None, experiment_name=None):
    """
    Build the export filename, e.g. 'Anna_Li_EmojiSocial_20260101T0930_ordered.csv'.

    Parameters:
    participant (Participant): Source of the name
    tag (str): 'ordered' or 'ordered_partial'
    now (datetime): Time of export (default: current UTC time)
    experiment_name (str): Middle part of the name (default 'EmojiSocial')
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    experiment_name = experiment_name or DEFAULT_PARAMS['experiment_name']
    stamp = now.strftime("%Y%m%dT%H%M")
    return f"{sanitize_name(participant.name)}_{experiment_name}_{stamp}_{tag}.csv"


def save_ledger(ledger, participant, tag, writer, now=None, experiment_name=None):
    """
    Export the ledger through `writer(filename, text)`.

    Returns:
    str: The filename handed to the writer
    """
    filename = export_filename(participant, tag, now=now, experiment_name=experiment_name)
    writer(filename, rows_to_csv(ledger))
    logging.exp(f"Exported {len(ledger)} records to {filename}")
    print(f"Data saved to {filename}")
    return filename
