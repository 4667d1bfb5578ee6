# scripts/local_check.py
import subprocess
import sys
import tomllib

STEPS = (
    ("python -m black --line-length 100 src scripts tests", "Black formatting", True),
    ("ruff check src scripts tests", "Ruff lint", False),
    ("mypy src/shiftwise", "Mypy type check", False),
    ("python -m pytest -q", "Test suite", False),
)


def run(cmd, desc, fix=False):
    print(f"\n{'🔧' if fix else '🧪'} {desc} ...")
    try:
        subprocess.run(cmd, check=True, shell=True)
    except subprocess.CalledProcessError as e:
        print(f"⚠️  {desc} failed ({e.returncode})")
        return False
    return True


def check_toml():
    try:
        with open("pyproject.toml", "rb") as f:
            tomllib.load(f)
        print("✅ pyproject.toml syntax OK")
    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"❌ pyproject.toml error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    check_toml()
    failed = [desc for cmd, desc, fix in STEPS if not run(cmd, desc, fix)]
    print(f"\n🏁 Local check completed{': failed ' + ', '.join(failed) if failed else '.'}")
    sys.exit(1 if failed else 0)
