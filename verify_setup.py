#!/usr/bin/env python3
"""
Verification script to check if autoconnect is set up correctly.
Run this after installation to verify everything works.
"""

import sys

from rich.console import Console
from rich.panel import Panel

console = Console()


def check_python_version():
    """Check Python version."""
    version = sys.version_info
    text = f"{version.major}.{version.minor}.{version.micro}"
    return (version.major == 3 and version.minor >= 10), text


def check_dependencies():
    """Check if all required packages are installed."""
    required = [
        "playwright",
        "PIL",
        "yaml",
        "loguru",
        "rich",
        "pydantic",
        "dotenv",
        "tenacity",
        "fastapi",
        "uvicorn",
        "sse_starlette",
    ]

    results = {}
    for package in required:
        try:
            mod = __import__(package)
            results[package] = True, getattr(mod, "__version__", "installed")
        except ImportError:
            results[package] = False, "Not installed"

    return results


def check_config():
    """Check configuration."""
    try:
        from autoconnect.utils import config
    except Exception as e:
        return {f"Config import failed: {e}": False}

    run_config = config.automation_config()
    checks = {"Config loaded": True}
    errors = run_config.validate_settings()
    if errors:
        for error in errors:
            checks[error] = False
    else:
        checks["Run settings valid"] = True
    checks[f"Browser profile dir: {config.user_data_dir}"] = True
    return checks


def check_playwright():
    """Check if Playwright browsers are installed."""
    try:
        from playwright.sync_api import sync_playwright

        with sync_playwright() as p:
            try:
                browser = p.chromium.launch()
                browser.close()
                return True, "Chromium installed"
            except Exception as e:
                return False, str(e)
    except Exception as e:
        return False, str(e)


def main():
    console.print(Panel.fit(
        "[bold blue]autoconnect Setup Verification[/bold blue]\n"
        "Checking if everything is installed correctly...",
        border_style="blue"
    ))
    console.print()

    console.print("[bold]1. Python Version[/bold]")
    python_ok, version = check_python_version()
    console.print(f"   {'✅' if python_ok else '❌'} Python {version}{'' if python_ok else ' (Need 3.10+)'}")
    console.print()

    console.print("[bold]2. Dependencies[/bold]")
    deps = check_dependencies()
    for package, (installed, version) in deps.items():
        console.print(f"   {'✅' if installed else '❌'} {package}: {version}")
    console.print()

    console.print("[bold]3. Playwright Browsers[/bold]")
    playwright_ok, message = check_playwright()
    console.print(f"   {'✅' if playwright_ok else '❌'} {message}")
    if not playwright_ok:
        console.print("   💡 Run: playwright install chromium")
    console.print()

    console.print("[bold]4. Configuration[/bold]")
    config_checks = check_config()
    for check, passed in config_checks.items():
        console.print(f"   {'✅' if passed else '❌'} {check}")
        if not passed and "LINKEDIN_" in check:
            console.print("      💡 Add LINKEDIN_USERNAME and LINKEDIN_PASSWORD to .env")
    console.print()

    all_passed = (
        python_ok
        and all(installed for installed, _ in deps.values())
        and playwright_ok
        and all(config_checks.values())
    )

    if all_passed:
        console.print(Panel.fit(
            "[bold green]✅ All checks passed![/bold green]\n"
            "You're ready to use autoconnect.\n\n"
            "Try: [cyan]python -m autoconnect --show-config[/cyan]",
            border_style="green"
        ))
    else:
        console.print(Panel.fit(
            "[bold yellow]⚠️  Some checks failed[/bold yellow]\n"
            "Please address the issues above.",
            border_style="yellow"
        ))
        sys.exit(1)


if __name__ == "__main__":
    main()
