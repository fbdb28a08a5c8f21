#!/usr/bin/env python3
"""
Verify vhdenv project structure and syntax.

This script can run without external dependencies to verify the codebase,
including the bootstrap files that are copied onto every new environment.
"""

import ast
import sys
from pathlib import Path

BOOTSTRAP_FILES = [
    "AutoRun.inf",
    "Startup.cmd",
    "Programs/Macros/macros.cmd",
    "Programs/Macros/macro.cmd",
]


def verify_syntax(file_path: Path) -> tuple[bool, str]:
    """Verify Python file syntax."""
    try:
        source = file_path.read_text(encoding="utf-8")
        ast.parse(source)
        return True, "OK"
    except SyntaxError as e:
        return False, f"Syntax error: {e}"
    except (OSError, UnicodeDecodeError) as e:
        return False, f"Error: {e}"


def verify_bootstrap_file(file_path: Path) -> tuple[bool, str]:
    """Bootstrap files are read by cmd.exe: ASCII with CRLF line endings."""
    data = file_path.read_bytes()
    try:
        data.decode("ascii")
    except UnicodeDecodeError:
        return False, "not ASCII"
    if data.replace(b"\r\n", b"").count(b"\n"):
        return False, "bare LF line endings"
    return True, "OK"


def main() -> int:
    """Main verification routine."""
    project_root = Path(__file__).parent.parent
    src_dir = project_root / "src" / "vhdenv"
    tests_dir = project_root / "tests"

    print("=" * 60)
    print("vhdenv Structure Verification")
    print("=" * 60)

    required_dirs = [
        src_dir / "core",
        src_dir / "platform" / "windows",
        src_dir / "cli",
        src_dir / "resources" / "platform",
        tests_dir / "unit",
        tests_dir / "integration",
    ]

    print("\nChecking directories...")
    all_dirs_ok = True
    for dir_path in required_dirs:
        exists = dir_path.exists()
        status = "✓" if exists else "✗"
        print(f"  [{status}] {dir_path.relative_to(project_root)}")
        if not exists:
            all_dirs_ok = False

    required_files = [
        "setup.py",
        "src/vhdenv/__init__.py",
        "src/vhdenv/core/config.py",
        "src/vhdenv/core/diskpart.py",
        "src/vhdenv/core/lifecycle.py",
        "src/vhdenv/core/orchestrator.py",
        "src/vhdenv/core/reaper.py",
        "src/vhdenv/core/supervisor.py",
        "src/vhdenv/core/templates.py",
        "src/vhdenv/platform/base.py",
        "src/vhdenv/platform/windows/backend.py",
        "src/vhdenv/cli/main.py",
    ]

    print("\nChecking required files...")
    all_files_ok = True
    for file_rel in required_files:
        exists = (project_root / file_rel).exists()
        status = "✓" if exists else "✗"
        print(f"  [{status}] {file_rel}")
        if not exists:
            all_files_ok = False

    print("\nChecking bootstrap files...")
    bootstrap_ok = True
    for file_rel in BOOTSTRAP_FILES:
        file_path = src_dir / "resources" / "platform" / file_rel
        if not file_path.exists():
            ok, msg = False, "missing"
        else:
            ok, msg = verify_bootstrap_file(file_path)
        status = "✓" if ok else "✗"
        print(f"  [{status}] {file_rel}: {msg}")
        if not ok:
            bootstrap_ok = False

    print("\nVerifying Python syntax...")
    py_files = list((project_root / "src").rglob("*.py"))
    py_files.extend(list(tests_dir.rglob("*.py")))

    syntax_errors = []
    for py_file in py_files:
        ok, msg = verify_syntax(py_file)
        if not ok:
            syntax_errors.append((py_file.relative_to(project_root), msg))

    if syntax_errors:
        print("  Syntax errors found:")
        for file_path, msg in syntax_errors:
            print(f"    ✗ {file_path}: {msg}")
    else:
        print(f"  ✓ All {len(py_files)} Python files have valid syntax")

    print("\n" + "=" * 60)
    all_ok = all_dirs_ok and all_files_ok and bootstrap_ok and not syntax_errors

    if all_ok:
        print("✓ All verification checks passed!")
        return 0
    else:
        print("✗ Some verification checks failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
