"""
Pre-flight checks for the Minecraft <-> Discord bridge

Checks configuration, libraries and the game worker before the bot starts.
Every check must pass for main.py to continue.
"""

import importlib.util
import os
import shutil
import sys

import config


def print_test_header(test_name):
    """Print a formatted check header"""
    print(f"\n{'='*60}")
    print(f"Checking: {test_name}")
    print('='*60)


def print_success(message):
    print(f"[OK] {message}")


def print_error(message):
    print(f"[FAIL] {message}")


def print_info(message):
    print(f"  - {message}")


def check_environment_variables() -> bool:
    """
    Discord token and control channel are required; the game server
    settings fall back to defaults and are only reported.
    """
    print_test_header("Environment Variables")

    ok = True
    if not config.DISCORD_TOKEN:
        print_error("DISCORD_BOT_TOKEN not found in environment variables")
        print_info("Please add DISCORD_BOT_TOKEN to your .env file")
        ok = False
    else:
        print_success("DISCORD_BOT_TOKEN is set")

    if not config.DISCORD_CHANNEL_ID:
        print_error("DISCORD_CHANNEL_ID not found in environment variables")
        print_info("Set it to the id of the channel that hosts the control post")
        ok = False
    else:
        print_success(f"DISCORD_CHANNEL_ID is set ({config.DISCORD_CHANNEL_ID})")

    print_info(f"Minecraft server: {config.MC_HOST}:{config.MC_PORT} ({config.MC_VERSION}, auth={config.MC_AUTH})")
    if ok:
        print_success("Environment variables check passed")
    return ok


def check_required_packages() -> bool:
    print_test_header("Required Python Packages")

    required_packages = {
        'discord': 'discord.py',
        'aiohttp': 'aiohttp',
        'dotenv': 'python-dotenv',
    }
    if getattr(config, "WEB_SERVER_ENABLED", False):
        required_packages.update({
            'fastapi': 'fastapi',
            'pydantic': 'pydantic',
            'uvicorn': 'uvicorn',
        })

    all_installed = True
    install_hint = "pip install -e ."

    for module_name, package_name in required_packages.items():
        try:
            spec = importlib.util.find_spec(module_name)
        except ModuleNotFoundError:
            spec = None

        if spec is not None:
            print_success(f"{package_name} is installed")
            continue

        print_error(f"{package_name} is NOT installed")
        print_info(f"Install with: {install_hint}")
        all_installed = False

    if all_installed:
        print_success("All required packages are installed")
    else:
        print_error("Some required packages are missing")
    return all_installed


def check_game_worker() -> bool:
    """The worker executable must resolve; its script (if any) must exist."""
    print_test_header("Game Worker")

    command = list(getattr(config, "GAME_WORKER_COMMAND", []))
    if not command:
        print_error("GAME_WORKER_COMMAND is empty")
        return False

    executable = shutil.which(command[0])
    if executable is None:
        print_error(f"Executable not found: {command[0]}")
        print_info("Install it or set GAME_WORKER_COMMAND in your .env file")
        return False
    print_success(f"Executable found: {executable}")

    for arg in command[1:]:
        if arg.startswith("-"):
            continue
        if os.path.splitext(arg)[1] and not os.path.exists(arg):
            print_error(f"Worker script not found: {arg}")
            return False
        break

    print_success(f"Worker command: {' '.join(command)}")
    return True


def run_all_tests() -> bool:
    """
    Runs all pre-flight checks, stopping at the first failure.
    Returns True if all checks pass, False otherwise.
    """
    print("\n" + "="*60)
    print("Minecraft Discord Bridge - Pre-Flight System Check")
    print("="*60)

    checks = [
        ("Environment Variables", check_environment_variables),
        ("Required Packages", check_required_packages),
        ("Game Worker", check_game_worker),
    ]

    passed = []
    for name, check in checks:
        try:
            result = check()
        except Exception as e:
            print(f"\n\n[FAIL] Check '{name}' crashed: {e}")
            print("="*60 + "\n")
            return False

        if not result:
            print(f"\n\n[FAIL] Check failed: {name}")
            print("="*60)
            print("Pre-flight checks stopped due to failure.")
            print("Please fix the error above before continuing.")
            print("="*60 + "\n")
            return False
        passed.append(name)

    print("\n" + "="*60)
    print("ALL PRE-FLIGHT CHECKS PASSED")
    print("="*60)
    for i, name in enumerate(passed, 1):
        print(f"  [{i}/{len(checks)}] [OK] {name}")
    print()
    return True


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)
