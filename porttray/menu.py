"""Growth-only pool of tray menu rows, rebound to the current listeners each cycle.

The tray toolkit cannot delete menu items, so rows are allocated on demand,
kept forever, and hidden when there is nothing to show in them.
"""
import threading

from porttray import CONFIG, debug_log
from porttray import actions
from porttray.scanner import is_separator

SEPARATOR_TITLE = "───────────────"
WARNING_MARK = "⚠️"


class MenuHandle:
    """A single menu entry: what the tray renders and where clicks go."""

    def __init__(self, title=""):
        self.title = title
        self.enabled = True
        self.visible = True
        self.children = []
        self.on_click = None

    def set_title(self, title):
        self.title = title

    def enable(self):
        self.enabled = True

    def disable(self):
        self.enabled = False

    def show(self):
        self.visible = True

    def hide(self):
        self.visible = False

    def add_sub_item(self, title):
        child = MenuHandle(title)
        self.children.append(child)
        return child

    def click(self):
        if self.on_click is not None and self.enabled and self.visible:
            self.on_click()


class MenuSurface:
    """Ordered list of top-level menu entries."""

    def __init__(self):
        self.items = []

    def add_item(self, title=""):
        item = MenuHandle(title)
        self.items.append(item)
        return item


def listener_url(listener):
    return f"http://localhost:{listener.port}"


def format_title(listener, show_cwd=True):
    title = f"[{listener.port}] {listener.command}"
    if show_cwd and listener.cwd:
        title += f" {{in {listener.cwd}}}"
    if listener.status >= 400:
        title = f"{WARNING_MARK} {title} (HTTP {listener.status})"
    return title


def _fire_and_forget(func, *args):
    threading.Thread(target=func, args=args, daemon=True).start()


class PresentationSlot:
    """One reusable menu row with its Open / Copy / Stop sub-items."""

    def __init__(self, surface, dispatch=_fire_and_forget):
        self.parent = surface.add_item()
        self.open = self.parent.add_sub_item("Open in Browser")
        self.copy = self.parent.add_sub_item("Copy URL")
        self.stop = self.parent.add_sub_item("Stop Process")
        self.listener = None
        self._dispatch = dispatch

        # Bound once; each click reads whatever listener is bound at that moment.
        self.open.on_click = self.handle_open
        self.copy.on_click = self.handle_copy
        self.stop.on_click = self.handle_stop

    def _current(self):
        listener = self.listener
        if listener is None or not listener.pid or is_separator(listener):
            return None
        return listener

    def handle_open(self):
        listener = self._current()
        if listener is not None:
            self._dispatch(actions.open_browser, listener_url(listener))

    def handle_copy(self):
        listener = self._current()
        if listener is not None:
            self._dispatch(actions.copy_to_clipboard, listener_url(listener))

    def handle_stop(self):
        listener = self._current()
        if listener is not None:
            self._dispatch(actions.stop_process, listener.pid)

    def bind(self, listener):
        self.listener = listener
        if is_separator(listener):
            self.parent.set_title(SEPARATOR_TITLE)
            self.parent.disable()
            self.open.hide()
            self.copy.hide()
            self.stop.hide()
        else:
            self.parent.set_title(format_title(listener, CONFIG.get("show_working_directory", True)))
            self.parent.enable()
            self.open.show()
            self.copy.show()
            self.stop.show()
        self.parent.show()

    def release(self):
        self.listener = None
        self.parent.hide()


class MenuReconciler:
    """Keeps visible slot i in step with candidate i.

    Only the poll thread calls reconcile(); click handlers only read
    PresentationSlot.listener.
    """

    def __init__(self, surface, dispatch=_fire_and_forget):
        self.surface = surface
        self.slots = []
        self._dispatch = dispatch

    def reconcile(self, listeners):
        while len(self.slots) < len(listeners):
            self.slots.append(PresentationSlot(self.surface, self._dispatch))
            debug_log(f"TRAY: Allocated menu slot #{len(self.slots)}")

        for i, slot in enumerate(self.slots):
            if i < len(listeners):
                slot.bind(listeners[i])
            else:
                slot.release()
