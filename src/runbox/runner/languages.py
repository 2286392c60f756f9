from __future__ import annotations
import sys
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class LanguageProfile:
    """Compile/run recipe for one language.

    Interpreted languages leave ``compile_command`` and ``compile_args`` as
    ``None``. All commands run with the job workspace as working directory.
    """

    source_file: str
    run_command: str
    run_args: Tuple[str, ...]
    compile_command: Optional[str] = None
    compile_args: Optional[Tuple[str, ...]] = None

    @property
    def compiled(self) -> bool:
        return self.compile_command is not None

    def compile_argv(self) -> List[str]:
        if self.compile_command is None:
            raise ValueError("profile has no compile step")
        return [self.compile_command, *(self.compile_args or ())]

    def run_argv(self) -> List[str]:
        return [self.run_command, *self.run_args]


_CPP_BINARY = "main.exe" if sys.platform == "win32" else "./main"

PROFILES: Dict[str, LanguageProfile] = {
    "cpp": LanguageProfile(
        source_file="main.cpp",
        compile_command="g++",
        compile_args=("main.cpp", "-O2", "-std=c++17", "-o", "main"),
        run_command=_CPP_BINARY,
        run_args=(),
    ),
    "python": LanguageProfile(
        source_file="main.py",
        run_command="python3",
        run_args=("main.py",),
    ),
    "java": LanguageProfile(
        source_file="Main.java",
        compile_command="javac",
        compile_args=("Main.java",),
        run_command="java",
        run_args=("Main",),
    ),
    "javascript": LanguageProfile(
        source_file="main.js",
        run_command="node",
        run_args=("main.js",),
    ),
}


def supported_languages() -> List[str]:
    return sorted(PROFILES)


def get_profile(
    language: str, runtimes: Optional[Mapping[str, str]] = None
) -> Optional[LanguageProfile]:
    """Return the profile for ``language``, or None when it is not supported.

    ``runtimes`` maps a toolchain name (``g++``, ``python3``, ``java``...) to
    the binary that should be invoked instead.
    """
    profile = PROFILES.get(language)
    if profile is None or not runtimes:
        return profile

    compile_command = profile.compile_command
    if compile_command is not None:
        compile_command = runtimes.get(compile_command, compile_command)
    return LanguageProfile(
        source_file=profile.source_file,
        compile_command=compile_command,
        compile_args=profile.compile_args,
        run_command=runtimes.get(profile.run_command, profile.run_command),
        run_args=profile.run_args,
    )
