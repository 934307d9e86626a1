#!/usr/bin/env python3

import importlib
import shutil
import sys

def check_dependency(name, package_name=None):
    package_name = package_name or name
    try:
        module = importlib.import_module(package_name)
        version = getattr(module, "__version__", None)
        print(f"✅ {name}" + (f" ({version})" if version else ""))
        return True
    except ImportError:
        print(f"❌ {name} - not installed")
        return False

def check_command(name):
    if shutil.which(name):
        print(f"✅ {name}")
        return True
    print(f"⚠️  {name} - not found (macOS only)")
    return False

def main():
    print("🔍 Checking VoxLearn Dependencies...")
    print("=" * 50)

    ok = True

    print("\n📦 Audio:")
    ok &= check_dependency("numpy")
    ok &= check_dependency("soundfile")
    ok &= check_dependency("sounddevice")

    print("\n🤖 Transcription / Analysis:")
    ok &= check_dependency("groq")
    ok &= check_dependency("requests")

    print("\n⌨️ Input:")
    ok &= check_dependency("pynput")

    print("\n🍎 macOS tools:")
    check_command("osascript")
    check_command("pbcopy")
    check_command("afplay")

    print("\n🛠️ Development Tools:")
    check_dependency("pytest")

    print("\n" + "=" * 50)
    print("✅ Dependency check complete!" if ok else "❌ Missing dependencies")

    print("\n🧪 Checking settings...")
    try:
        from voxlearn.config import Config
        config = Config.load()
        snapshot = config.snapshot()
        print(f"✅ Hotkey: {snapshot.hotkey}")
        print(f"✅ Correction analysis: {snapshot.correction_analysis_mode.value}")
        if not snapshot.groq_api_key:
            print("⚠️  GROQ_API_KEY is not set")
        if not snapshot.llm_config.is_valid:
            print(f"⚠️  LLM config for {snapshot.llm_config.provider.value} is incomplete")
    except Exception as e:
        print(f"❌ Error loading settings: {e}")
        ok = False

    return ok

if __name__ == "__main__":
    sys.exit(0 if main() else 1)
