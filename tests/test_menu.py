import unittest
from unittest.mock import patch

from porttray import CONFIG
from porttray import actions
from porttray.menu import (
    MenuReconciler,
    MenuSurface,
    SEPARATOR_TITLE,
    format_title,
)
from porttray.scanner import Listener, SEPARATOR


def listener(port, status=200, command="node", pid=None, cwd=""):
    return Listener(pid=pid or f"1{port}", command=command, port=str(port), cwd=cwd, status=status)


class MenuTestCase(unittest.TestCase):
    def setUp(self):
        patcher = patch.dict(CONFIG, {"debug_log": False, "show_working_directory": True})
        patcher.start()
        self.addCleanup(patcher.stop)
        self.dispatched = []
        self.surface = MenuSurface()
        self.reconciler = MenuReconciler(self.surface, dispatch=self._dispatch)

    def _dispatch(self, func, *args):
        self.dispatched.append((func, args))


class TestFormatTitle(unittest.TestCase):
    def test_plain(self):
        self.assertEqual(format_title(listener(3000)), "[3000] node")

    def test_with_cwd(self):
        self.assertEqual(format_title(listener(3000, cwd="/home/dev/app")), "[3000] node {in /home/dev/app}")

    def test_cwd_hidden(self):
        self.assertEqual(format_title(listener(3000, cwd="/home/dev/app"), show_cwd=False), "[3000] node")

    def test_error_status(self):
        self.assertEqual(
            format_title(listener(9000, status=500, command="java", cwd="/opt")),
            "⚠️ [9000] java {in /opt} (HTTP 500)",
        )


class TestReconcile(MenuTestCase):
    def test_slots_follow_candidates(self):
        rows = [listener(3000), listener(8080, cwd="/srv")]
        self.reconciler.reconcile(rows)

        self.assertEqual(len(self.reconciler.slots), 2)
        self.assertEqual([item.title for item in self.surface.items], ["[3000] node", "[8080] node {in /srv}"])
        for slot, row in zip(self.reconciler.slots, rows):
            self.assertIs(slot.listener, row)
            self.assertTrue(slot.parent.visible)
            self.assertTrue(slot.parent.enabled)
            self.assertTrue(all(child.visible for child in slot.parent.children))

    def test_slot_sub_items(self):
        self.reconciler.reconcile([listener(3000)])
        parent = self.surface.items[0]
        self.assertEqual([child.title for child in parent.children], ["Open in Browser", "Copy URL", "Stop Process"])
        self.assertFalse(hasattr(parent, "tooltip"))

    def test_show_working_directory_off(self):
        CONFIG["show_working_directory"] = False
        self.reconciler.reconcile([listener(8080, cwd="/srv")])
        self.assertEqual(self.surface.items[0].title, "[8080] node")

    def test_separator_slot(self):
        self.reconciler.reconcile([listener(3000), SEPARATOR, listener(9000, status=502)])

        sep = self.reconciler.slots[1]
        self.assertEqual(sep.parent.title, SEPARATOR_TITLE)
        self.assertFalse(sep.parent.enabled)
        self.assertTrue(sep.parent.visible)
        self.assertFalse(any(child.visible for child in sep.parent.children))
        self.assertEqual(self.reconciler.slots[2].parent.title, "⚠️ [9000] node (HTTP 502)")

    def test_separator_slot_rebound_to_listener(self):
        self.reconciler.reconcile([SEPARATOR, listener(9000, status=502)])
        self.reconciler.reconcile([listener(3000)])

        slot = self.reconciler.slots[0]
        self.assertEqual(slot.parent.title, "[3000] node")
        self.assertTrue(slot.parent.enabled)
        self.assertTrue(all(child.visible for child in slot.parent.children))

    def test_shrinking_hides_and_growing_reuses(self):
        self.reconciler.reconcile([listener(1), listener(2), listener(3)])
        first_slots = list(self.reconciler.slots)

        self.reconciler.reconcile([listener(4)])
        self.assertEqual(self.reconciler.slots, first_slots)
        self.assertEqual(len(self.surface.items), 3)
        self.assertTrue(first_slots[0].parent.visible)
        self.assertFalse(first_slots[1].parent.visible)
        self.assertFalse(first_slots[2].parent.visible)
        self.assertIsNone(first_slots[1].listener)

        self.reconciler.reconcile([listener(5), listener(6), listener(7), listener(8)])
        self.assertEqual(self.reconciler.slots[:3], first_slots)
        self.assertEqual(len(self.surface.items), 4)
        self.assertTrue(all(slot.parent.visible for slot in self.reconciler.slots))
        self.assertEqual(first_slots[1].parent.title, "[6] node")

    def test_empty_cycle_hides_everything(self):
        self.reconciler.reconcile([listener(1), listener(2)])
        self.reconciler.reconcile([])
        self.assertEqual(len(self.reconciler.slots), 2)
        self.assertFalse(any(item.visible for item in self.surface.items))


class TestSlotHandlers(MenuTestCase):
    def test_open_copy_stop(self):
        self.reconciler.reconcile([listener(3000, pid="4242")])
        slot = self.reconciler.slots[0]

        slot.open.click()
        slot.copy.click()
        slot.stop.click()

        self.assertEqual(self.dispatched, [
            (actions.open_browser, ("http://localhost:3000",)),
            (actions.copy_to_clipboard, ("http://localhost:3000",)),
            (actions.stop_process, ("4242",)),
        ])

    def test_handlers_installed_once(self):
        self.reconciler.reconcile([listener(3000)])
        slot = self.reconciler.slots[0]
        handler = slot.open.on_click

        self.reconciler.reconcile([listener(8080)])
        self.assertIs(slot.open.on_click, handler)

    def test_click_after_rebind_uses_current_listener(self):
        self.reconciler.reconcile([listener(3000, pid="1")])
        slot = self.reconciler.slots[0]
        self.reconciler.reconcile([listener(8080, pid="2")])

        slot.stop.click()
        slot.open.click()

        self.assertEqual(self.dispatched, [
            (actions.stop_process, ("2",)),
            (actions.open_browser, ("http://localhost:8080",)),
        ])

    def test_separator_and_released_slots_do_nothing(self):
        self.reconciler.reconcile([SEPARATOR, listener(9000, status=500)])
        sep, err = self.reconciler.slots
        sep.handle_open()
        sep.handle_copy()
        sep.handle_stop()

        self.reconciler.reconcile([])
        err.handle_stop()
        err.handle_open()

        self.assertEqual(self.dispatched, [])

    def test_hidden_sub_item_ignores_click(self):
        self.reconciler.reconcile([SEPARATOR])
        self.reconciler.slots[0].stop.click()
        self.assertEqual(self.dispatched, [])


if __name__ == "__main__":
    unittest.main()
