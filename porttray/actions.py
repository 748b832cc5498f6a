"""Fire-and-forget OS actions behind the Open / Copy / Stop menu items."""
import webbrowser

import psutil
import pyperclip

from porttray import debug_log


def open_browser(url):
    try:
        webbrowser.open(url)
    except (OSError, webbrowser.Error) as e:
        debug_log(f"ACTION: URL open error for {url}: {e}")


def copy_to_clipboard(text):
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        debug_log(f"ACTION: Clipboard error: {e}")


def stop_process(pid):
    """SIGKILL the process; the menu catches up on the next refresh."""
    if not pid or not str(pid).isdigit():
        return
    try:
        psutil.Process(int(pid)).kill()
        debug_log(f"ACTION: Killed process {pid}")
    except psutil.Error as e:
        debug_log(f"ACTION: Failed to kill {pid}: {e}")
