#!/usr/bin/env python3
import os
import sys
import time
import argparse
import yaml

# Debug logging
CONFIG_DIR = os.path.expanduser("~/.config/porttray")
DEBUG_LOG_PATH = os.path.join(CONFIG_DIR, "debug.log")
CONFIG_PATH = os.path.join(CONFIG_DIR, "config.yaml")

CONFIG = {
    "debug_log": True,
    "show_working_directory": True,
}


def debug_log(msg):
    """Write a timestamped message to the debug log."""
    if not CONFIG.get("debug_log", True):
        return
    try:
        os.makedirs(os.path.dirname(DEBUG_LOG_PATH), exist_ok=True)
        with open(DEBUG_LOG_PATH, "a") as f:
            f.write(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] {msg}\n")
    except OSError:
        pass


def init_config():
    """Merge ~/.config/porttray/config.yaml into CONFIG, writing defaults if absent."""
    if not os.path.exists(CONFIG_PATH):
        save_config()
        return
    try:
        with open(CONFIG_PATH, "r") as f:
            saved = yaml.safe_load(f) or {}
        if not isinstance(saved, dict):
            raise ValueError(f"expected a mapping, got {type(saved).__name__}")
        CONFIG.update(saved)
    except (OSError, yaml.YAMLError, ValueError) as e:
        debug_log(f"CONFIG: Error loading {CONFIG_PATH}: {e}")


def save_config():
    try:
        os.makedirs(CONFIG_DIR, exist_ok=True)
        with open(CONFIG_PATH, "w") as f:
            yaml.safe_dump(CONFIG, f, default_flow_style=False)
    except OSError as e:
        debug_log(f"CONFIG: Error saving: {e}")


def check_python_version():
    if sys.version_info < (3, 7):
        print("Python 3.7 or newer is required.")
        sys.exit(1)


def _get_app_version():
    try:
        v_file = os.path.join(os.path.dirname(__file__), "VERSION")
        with open(v_file) as f:
            return f.read().strip()
    except OSError:
        return "1.0.0"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="porttray",
        description="Tray menu of local HTTP servers listening on TCP ports",
    )
    parser.add_argument("--version", action="version", version=f"porttray {_get_app_version()}")
    return parser.parse_args(argv)


def cli_entry():
    """terminal command 'porttray' entry point"""
    check_python_version()
    parse_args()
    init_config()

    from porttray.tray import TrayApp

    debug_log(f"TRAY: Starting porttray {_get_app_version()}")
    TrayApp().run()


if __name__ == "__main__":
    cli_entry()
