# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


def test_import_coreason_runner_package() -> None:
    """Tests that the main application package is importable."""
    try:
        import coreason_runner
        from coreason_runner.models import ContainerExecutionConfig, RunOutcome  # noqa: F401
        from coreason_runner.runner import ContainerRunner, ContainerRunnerAsync  # noqa: F401
    except ImportError as e:
        assert False, f"Failed to import from the 'coreason_runner' package: {e}"

    assert coreason_runner.__version__ == "0.1.0"
    for name in coreason_runner.__all__:
        assert hasattr(coreason_runner, name), name
