#!/usr/bin/env python3
"""
Smoke test against the live generation services (text, image and narration).

Skipped unless the API keys are configured. Run directly for a verbose check:
    python test_core_apis.py
"""
import asyncio
import sys

import pytest

from storybook.audio import pcm_to_wav
from storybook.image_client import is_placeholder
from storybook.models import AgeRange
from storybook.settings import Settings, has_all_keys
from storybook.strategies import build_strategy


async def check_core_apis() -> bool:
    """Generate a two-page story and the media for its first page."""

    print("🧪 Testing core APIs...")

    settings = Settings.from_env()
    if not has_all_keys(settings):
        print("❌ API keys not configured. Please check your .env file.")
        return False

    print(f"✅ API keys configured (strategy: {settings.strategy})")
    strategy = build_strategy(settings)
    idea = "Un pequeño búho que no podía dormir de noche"

    try:
        print("\n🤖 Testing text generation...")
        title = await strategy.title(idea)
        character = await strategy.character_description(idea)
        pages = await strategy.story(idea, AgeRange.early, 2, character)
        print(f"✅ Text generation working! '{title}' with {len(pages)} pages")
        print(f"📖 First page: {pages[0]['text'][:100]}...")

        print("\n🎨 Testing image generation...")
        image_url = await strategy.image(pages[0]["imagePrompt"], True)
        if is_placeholder(image_url):
            print("❌ Image generation returned a placeholder")
            return False
        print(f"✅ Image generation working! {image_url[:60]}...")

        print("\n🔊 Testing narration...")
        narration = await strategy.narration(pages[0]["text"])
        if narration.pcm_data:
            print(f"✅ Narration working! {len(pcm_to_wav(narration.pcm_data))} WAV bytes")
        else:
            print("✅ Narration working! (playback only)")
        return True

    except Exception as e:
        print(f"❌ API test failed: {e}")
        import traceback
        traceback.print_exc()
        return False


@pytest.mark.skipif(not has_all_keys(Settings.from_env()), reason="API keys not configured")
def test_core_apis() -> None:
    assert asyncio.run(check_core_apis())


if __name__ == "__main__":
    success = asyncio.run(check_core_apis())
    if success:
        print("\n✅ CORE APIS WORKING")
    else:
        print("\n💥 CORE API TEST FAILED")
    sys.exit(0 if success else 1)
