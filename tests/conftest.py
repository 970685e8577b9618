import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
from bip_utils import Bip39SeedGenerator

from bipkeychain.config import PASSPHRASE_ENV_VAR, SEED_ENV_VAR
from bipkeychain.lib.derivation import KeychainSession
from tests.helpers.entities import ABANDON_MNEMONIC, make_entity


@pytest.fixture(scope="session")
def root_secret():
    """64-byte root secret derived from the all-abandon test mnemonic."""
    return Bip39SeedGenerator(ABANDON_MNEMONIC).Generate()


@pytest.fixture
def session(root_secret):
    """An open KeychainSession, wiped after the test."""
    with KeychainSession(root_secret) as s:
        yield s


@pytest.fixture
def entity_doc():
    return make_entity()


@pytest.fixture
def entity_json(entity_doc):
    return json.dumps(entity_doc, indent=2)


@pytest.fixture
def cli_test_env(tmp_path, request):
    """
    Sets up a temporary directory and a helper for running the bip-keychain CLI.

    The seed phrase is passed through the environment, never argv.
    """
    src_dir = Path(__file__).resolve().parent.parent / "src"
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in [str(src_dir), env.get("PYTHONPATH", "")] if p
    )
    env[SEED_ENV_VAR] = ABANDON_MNEMONIC
    env.pop(PASSPHRASE_ENV_VAR, None)

    def run_command(cmd, extra_env=None, unset=()):
        run_env = dict(env)
        run_env.update(extra_env or {})
        for name in unset:
            run_env.pop(name, None)
        full_cmd = [sys.executable, "-m", "bipkeychain.cli.main"] + cmd
        result = subprocess.run(
            full_cmd,
            cwd=tmp_path,
            env=run_env,
            capture_output=True,
            text=True,
            check=False,
        )

        if request.config.getoption("capture") == "no":
            if result.stdout:
                print(result.stdout)
            if result.stderr:
                print(result.stderr, file=sys.stderr)
        return result

    return run_command, tmp_path
