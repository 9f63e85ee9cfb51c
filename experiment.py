"""
Emoji Social Cue Memory Experiment

Participants memorise two images, see an emoji paired with a complex image that
predicts the probe side, and judge whether the probe matches the item that was
shown at that location (J = same, F = different, ESC = quit and save).

This script provides the PsychoPy side of the session: the intake dialog, the
window, stimulus loading, stage drawing with PsychToolBox timing and saving the
CSV into the data folder. The session flow itself lives in session.py.

Author: [Emoji Social Lab]
Date: October 2026
"""
import psychtoolbox as ptb # need this to be installed on the machine!
from psychopy import visual, core, event, gui, logging
import os
import sys
import random
from datetime import datetime, timezone

# Import custom modules
from config import DISPLAY, MESSAGES, prepare_experiment_parameters
from ledger import Participant, sanitize_name
from responses import ResponseEvent
from session import SessionContext, run_session
from stages import SENDING, CONNECTING, fit_size
from trial_sequences import LEFT

# ----- Folder Setup -----
# Ensure that relative paths start from the same directory as this script
_thisDir = os.path.dirname(os.path.abspath(__file__))

DATA_FOLDER = os.path.join(_thisDir, 'data')

# Polling interval inside timed stages
t_poll = 1 / 1000  # 1 ms

# ----- Utility Functions -----

def write_data_file(filename, text):
    """
    Write an export file into the data folder.

    Parameters:
    filename (str): File name produced by ledger.export_filename
    text (str): CSV content

    Returns:
    str: Full path to the saved file
    """
    if not os.path.exists(DATA_FOLDER):
        os.makedirs(DATA_FOLDER)
    full_path = os.path.join(DATA_FOLDER, filename)
    with open(full_path, 'w', encoding='utf-8', newline='') as f:
        f.write(text)
    print(f"Block data saved to {full_path}")
    return full_path

# ----- Experiment Interface -----
def show_participant_dialog():
    """
    Display dialog to gather participant information.

    Returns:
    dict: Participant fields and run settings
    bool: Whether the dialog was OK'd or canceled
    """
    exp_info = {
        'name': '',
        'birthdate': '',
        'gender': ['F', 'M', 'Other'],
        'handedness': ['Right', 'Left', 'Both'],
        'debug_mode': False,
    }

    dlg = gui.DlgFromDict(
        dictionary=exp_info,
        title='Emoji Social Experiment',
        order=['name', 'birthdate', 'gender', 'handedness', 'debug_mode'],
        tip={'birthdate': 'YYYY-MM-DD'},
    )

    if dlg.OK:
        return exp_info, True
    else:
        return None, False


class PsychoPyPresenter:
    """Draws stage descriptions in a PsychoPy window and collects key presses."""

    def __init__(self, win):
        self.win = win
        self.image_stims = {}
        self.native_sizes = {}  # pixel size of each image as loaded
        self.fixation = visual.TextStim(win=win, name='fixation', text='+', font='Arial',
                                        pos=(0, 0), height=40, color='black', bold=True)
        self.message = visual.TextStim(win=win, name='message', text='', font='Arial',
                                       pos=(0, 0), height=36, wrapWidth=1000, color='black',
                                       bold=True)

    def _load(self, path, file_path):
        stim = visual.ImageStim(win=self.win, image=file_path, units='pix')
        self.image_stims[path] = stim
        self.native_sizes[path] = tuple(stim.size)
        return stim

    def preload(self, paths):
        """
        Create an ImageStim for every stimulus file.

        Returns:
        list: Paths that could not be loaded
        """
        missing = []
        for path in paths:
            file_path = os.path.join(_thisDir, path)
            if not os.path.exists(file_path):
                print(f"WARNING: File does not exist: {file_path}")
                missing.append(path)
                continue
            try:
                self._load(path, file_path)
            except (OSError, ValueError) as e:
                print(f"Error loading stimulus {path}: {e}")
                missing.append(path)
        return missing

    def _image(self, path, side):
        stim = self.image_stims.get(path)
        if stim is None:
            stim = self._load(path, os.path.join(_thisDir, path))
        if side == 'center':
            # Largest size that fits the window with the aspect ratio kept
            stim.pos = (0, 0)
            stim.size = fit_size(self.native_sizes[path], self.win.size)
        else:
            x = DISPLAY['pos_left_x'] if side == LEFT else DISPLAY['pos_right_x']
            stim.pos = (x, DISPLAY['pos_y'])
            stim.size = (DISPLAY['img_size'], DISPLAY['img_size'])
        return stim

    def _draw(self, stage, elapsed):
        for path, side in stage.images:
            self._image(path, side).draw()
        if stage.kind == SENDING:
            # Animated dots, 0-6, one step per 100 ms
            self.message.text = stage.text + '.' * (int(elapsed / 0.1) % 7)
            self.message.draw()
        elif stage.kind == CONNECTING:
            # Animated dots, 0-3, one step per 200 ms
            first, _, rest = stage.text.partition('...')
            self.message.text = first + '.' * (int(elapsed / 0.2) % 4) + rest
            self.message.draw()
        elif stage.text == '+':
            self.fixation.draw()
        elif stage.text:
            self.message.text = stage.text
            self.message.draw()

    def show(self, stage):
        """
        Present one stage until its duration elapses or an accepted key arrives.

        Returns:
        ResponseEvent or None
        """
        onset = 0

        def on_stage():
            nonlocal onset
            onset = ptb.GetSecs()

        self._draw(stage, 0)
        self.win.callOnFlip(on_stage)
        self.win.flip()
        event.clearEvents()

        key_list = list(stage.keys) or None
        redraw = stage.kind in (SENDING, CONNECTING)
        while stage.duration is None or (now := ptb.GetSecs()) - onset < stage.duration:
            if stage.keys:
                keys = event.getKeys(keyList=key_list)
                if keys:
                    rt = ptb.GetSecs() - onset
                    logging.log(level=logging.INFO,
                                msg=f"Key {keys[0]} during {stage.kind}, rt {rt:.3f}s")
                    return ResponseEvent(key=keys[0], rt=rt)
            if redraw:
                self._draw(stage, now - onset)
                self.win.flip()
            ptb.WaitSecs(t_poll)
        return None

    def show_message(self, text):
        self.message.text = text
        self.message.draw()
        self.win.flip()
        event.waitKeys(maxWait=10)


def run_experiment(exp_info, overrides=None):
    """
    Run one session with the participant from the intake dialog.

    Parameters:
    exp_info (dict): Participant fields and settings from the dialog
    overrides (dict): Parameter overrides (e.g. shorter timing for piloting)
    """
    if not os.path.exists(DATA_FOLDER):
        os.makedirs(DATA_FOLDER)

    # Initialize logging
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M")
    log_file = os.path.join(DATA_FOLDER, f"{sanitize_name(exp_info['name'])}_{stamp}_log.txt")
    logging.console.setLevel(logging.WARNING)
    logging.LogFile(log_file, level=logging.INFO)

    params = prepare_experiment_parameters(overrides)

    print("\nExperiment parameters:")
    for key, value in params.items():
        print(f"  {key}: {value}")
    logging.log(level=logging.INFO, msg=f"Parameters: {params}")

    participant = Participant(
        name=exp_info['name'],
        birthdate=exp_info['birthdate'],
        gender=exp_info['gender'],
        handedness=exp_info['handedness'],
    )

    win = visual.Window(
        size=DISPLAY['window_size'],
        fullscr=not exp_info['debug_mode'],  # Fullscreen unless in debug mode
        screen=0,
        allowGUI=False,
        monitor='testMonitor',
        units='pix',
        color=DISPLAY['background'],
        colorSpace='rgb255',
    )
    presenter = PsychoPyPresenter(win)

    ctx = SessionContext(
        params=params,
        presenter=presenter,
        writer=write_data_file,
        form=lambda: participant,
        preloader=presenter.preload,
        rng=random.Random(),
    )

    try:
        outcome = run_session(ctx)
        logging.log(level=logging.INFO, msg=f"Session outcome: {outcome}")
        if outcome.tag is None:
            print(MESSAGES['preload_failed'])
    finally:
        logging.flush()
        win.close()
        core.quit()

# ----- Main Program -----

def main():
    # Show dialog to get participant info
    exp_info, dialog_ok = show_participant_dialog()

    if dialog_ok:
        # Run the experiment
        run_experiment(exp_info)
    else:
        print("User cancelled the experiment.")
        sys.exit(0)


if __name__ == "__main__":
    main()
