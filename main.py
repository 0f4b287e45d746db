"""
Minecraft <-> Discord bridge (entrypoint)

This file only keeps the entrypoint.
- Discord wiring + web server: app/bot.py
- Bridge orchestration: app/controller.py
- Session core: session_supervisor.py, intent_gate.py, status_projector.py
"""

import sys
import config
from app.bot import run_bot

if __name__ == "__main__":
    from preflight import run_all_tests

    print("\nStarting Minecraft Discord Bridge...\n")
    if config.ENABLE_PREFLIGHT_CHECKS:
        if not run_all_tests():
            print("\n[FAIL] Pre-flight checks failed.\n")
            sys.exit(1)
        print("[OK] All systems operational\n")
    else:
        print("[WARN] Pre-flight checks skipped (set ENABLE_PREFLIGHT_CHECKS=True in config.py to enable)\n")

    run_bot()
