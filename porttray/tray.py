"""System tray front end: the poll loop and the pystray menu it feeds."""
import threading

import pystray
from PIL import Image, ImageDraw

from porttray import debug_log
from porttray import scanner
from porttray.menu import MenuReconciler, MenuSurface

POLL_INTERVAL = 10.0
TOOLTIP = "Open HTTP Ports"


class Poller(threading.Thread):
    """Background driver: scan, reconcile, repaint, sleep. Until stop()."""

    def __init__(self, reconciler, on_update=None, interval=POLL_INTERVAL, scan_func=None):
        super().__init__(daemon=True, name="Poller")
        self.reconciler = reconciler
        self.on_update = on_update
        self.interval = interval
        self.scan_func = scan_func or scanner.scan
        self._stop_event = threading.Event()
        self._last_count = None

    def stop(self):
        self._stop_event.set()

    @property
    def stopped(self):
        return self._stop_event.is_set()

    def run_cycle(self):
        """Run one scan + reconcile. Returns False if the menu was left as is."""
        try:
            rows = self.scan_func()
        except scanner.ScanError as e:
            debug_log(f"SCAN: Error getting open ports: {e}")
            return False
        except Exception as e:
            debug_log(f"SCAN: Unexpected error: {e!r}")
            return False

        if len(rows) != self._last_count:
            debug_log(f"SCAN: {len(rows)} menu row(s)")
            self._last_count = len(rows)

        try:
            self.reconciler.reconcile(rows)
            if self.on_update is not None:
                self.on_update()
        except Exception as e:
            debug_log(f"TRAY: Menu update failed: {e!r}")
            return False
        return True

    def run(self):
        while not self._stop_event.is_set():
            self.run_cycle()
            self._stop_event.wait(self.interval)


def create_icon_image():
    image = Image.new("RGBA", (64, 64), color=(0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    draw.ellipse((6, 6, 58, 58), fill="#1E3A8A")
    draw.ellipse((20, 20, 44, 44), fill="#0EA5E9")
    return image


def render_handle(handle):
    """Wrap a MenuHandle in a pystray item that reads its state on every paint."""
    if handle.children:
        action = pystray.Menu(*[render_handle(child) for child in handle.children])
    else:
        def action(icon, item):
            handle.click()

    return pystray.MenuItem(
        lambda item: handle.title,
        action,
        enabled=lambda item: handle.enabled,
        visible=lambda item: handle.visible,
    )


class TrayApp:
    def __init__(self):
        self.surface = MenuSurface()
        self.reconciler = MenuReconciler(self.surface)
        self.icon = pystray.Icon(
            "porttray",
            create_icon_image(),
            TOOLTIP,
            pystray.Menu(self._menu_items),
        )
        self.poller = Poller(self.reconciler, on_update=self.refresh)

    def _menu_items(self):
        items = [
            pystray.MenuItem("Quit", self.quit),
            pystray.Menu.SEPARATOR,
        ]
        items.extend(render_handle(handle) for handle in self.surface.items)
        return items

    def refresh(self):
        self.icon.update_menu()

    def quit(self, icon=None, item=None):
        debug_log("TRAY: Quit requested")
        self.poller.stop()
        self.icon.stop()

    def _setup(self, icon):
        icon.visible = True
        self.poller.start()

    def run(self):
        self.icon.run(setup=self._setup)
