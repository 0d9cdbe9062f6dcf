import json

import pytest
from typer.testing import CliRunner

from envelop.codec import decode
from envelop_cli.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    for name in ("ENVELOP_CONFIG", "ENVELOP_SECRET", "ENVELOP_COMPRESSION", "ENVELOP_SIGNATURE_REQUIRED"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVELOP_HOME", str(tmp_path / "keys"))
    monkeypatch.chdir(tmp_path)


def _new(tmp_path, *args):
    out = tmp_path / "wire.txt"
    result = runner.invoke(app, ["new", "--output", str(out), *args])
    assert result.exit_code == 0, result.output
    return out


def test_new_signed_gzip_then_decode(tmp_path):
    out = _new(tmp_path, "--type", "chat.message", "--body", "hi", "--sender", "a",
               "--receiver", "b", "--secret", "k1", "--compression", "gzip")
    env = decode(out.read_text(), "gzip", verify_with_secret="k1", signature_required=True)
    assert (env.type, env.body, env.sender, env.receiver) == ("chat.message", "hi", "a", "b")

    result = runner.invoke(app, ["decode", "--input", str(out), "--compression", "gzip",
                                 "--secret", "k1", "--require-signature", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout.strip().splitlines()[-1])["signature"] == env.signature


def test_decode_wrong_secret_fails_when_required(tmp_path):
    out = _new(tmp_path, "--type", "t", "--body", "x", "--secret", "k1")
    result = runner.invoke(app, ["decode", "--input", str(out), "--secret", "wrong", "--require-signature"])
    assert result.exit_code == 1
    assert "SignatureInvalid" in result.output


def test_decode_table(tmp_path):
    out = _new(tmp_path, "--type", "chat.message", "--json-body", '{"n": 1}', "-H", "k=v", "--ttl", "60")
    result = runner.invoke(app, ["decode", "--input", str(out)])
    assert result.exit_code == 0, result.output
    assert "chat.message" in result.stdout
    assert "expires" in result.stdout


def test_decode_from_stdin(tmp_path):
    out = _new(tmp_path, "--type", "t", "--body", "from stdin")
    result = runner.invoke(app, ["decode", "--json"], input=out.read_text())
    assert result.exit_code == 0, result.output
    assert "from stdin" in result.stdout


def test_verify_exit_codes(tmp_path):
    out = _new(tmp_path, "--type", "t", "--body", "x", "--secret", "k1")
    ok = runner.invoke(app, ["verify", "--input", str(out), "--secret", "k1"])
    assert ok.exit_code == 0
    assert "valid" in ok.stdout
    bad = runner.invoke(app, ["verify", "--input", str(out), "--secret", "nope"])
    assert bad.exit_code == 1
    assert "invalid" in bad.stdout


def test_verify_needs_secret(tmp_path):
    out = _new(tmp_path, "--type", "t")
    result = runner.invoke(app, ["verify", "--input", str(out)])
    assert result.exit_code == 1


def test_keygen_and_secret_file(tmp_path):
    result = runner.invoke(app, ["keygen", "team"])
    assert result.exit_code == 0, result.output
    key_file = tmp_path / "keys" / "team.key"
    assert len(key_file.read_text().strip()) == 64

    again = runner.invoke(app, ["keygen", "team"])
    assert again.exit_code == 1

    out = _new(tmp_path, "--type", "t", "--body", "x", "--secret-file", "team")
    env = decode(out.read_text())
    assert env.check_signature(key_file.read_text().strip())


def test_config_file_supplies_defaults(tmp_path):
    (tmp_path / "envelop.yaml").write_text("secret: k1\ncompression: gzip\n")
    out = _new(tmp_path, "--type", "t", "--body", "x")
    env = decode(out.read_text(), "gzip", verify_with_secret="k1", signature_required=True)
    assert env.body == "x"


def test_attach_missing_file_reports_error(tmp_path):
    result = runner.invoke(app, ["new", "--type", "t", "--attach", str(tmp_path / "missing.bin")])
    assert result.exit_code == 1


def test_conflicting_body_options(tmp_path):
    result = runner.invoke(app, ["new", "--type", "t", "--body", "x", "--link", "https://e/x"])
    assert result.exit_code == 1


def test_unknown_compression(tmp_path):
    result = runner.invoke(app, ["new", "--type", "t", "--compression", "zip"])
    assert result.exit_code == 1
