from __future__ import annotations

from pathlib import Path

from setuptools import find_namespace_packages, setup  # type: ignore[import-untyped]

ROOT = Path(__file__).parent


def _read_requirements() -> list[str]:
    requirements_path = ROOT / "requirements.txt"
    if not requirements_path.exists():
        return []
    lines = requirements_path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


setup(
    name="chatsync",
    version="0.1.0",
    description="Conversation and model-selection state engine for chat clients",
    python_requires=">=3.11",
    packages=find_namespace_packages(
        include=(
            "config",
            "config.*",
            "core",
            "core.*",
            "llm",
            "llm.*",
            "server",
            "server.*",
            "shared",
            "shared.*",
        ),
    ),
    include_package_data=True,
    install_requires=_read_requirements(),
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["chatsync-sessions=server.http.app:main"]},
)
