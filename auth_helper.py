"""Helper script to sign in once and keep the session in the browser profile."""

import asyncio

from playwright.async_api import async_playwright

from autoconnect.adapters import get_adapter
from autoconnect.utils import config


async def save_login_profile(profile_dir: str, login_url: str):
    """
    Manually log in with a persistent profile so automated runs reuse the session.

    Usage:
        python auth_helper.py
    """
    async with async_playwright() as p:
        # Headed, so the login (and any security check) can be completed by hand
        kwargs = {"headless": False, "viewport": {"width": 1280, "height": 720}}
        if config.chrome_executable_path:
            kwargs["executable_path"] = config.chrome_executable_path
        context = await p.chromium.launch_persistent_context(profile_dir, **kwargs)
        page = context.pages[0] if context.pages else await context.new_page()

        print(f"Opening {login_url}...")
        print("Please log in manually in the browser window.")

        await page.goto(login_url)

        # Wait for user to log in
        input("Press Enter after you've logged in...")

        print(f"✅ Session saved in {profile_dir}")
        print("Runs using this profile will skip the login form.")

        await context.close()


if __name__ == "__main__":
    print("Browser Profile Login Helper")
    print("=" * 50)
    adapter = get_adapter("linkedin")
    asyncio.run(save_login_profile(config.user_data_dir, adapter.login_url))
