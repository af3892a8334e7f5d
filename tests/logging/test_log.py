import base64

from kubeseed.bootstrap.cluster import commands
from kubeseed.errors import RemoteCommandError
from kubeseed.logging.log import init_logging, redact

JOIN = (
    "kubeadm join lb.kubeseed.local:6443 --token abcdef.0123456789abcdef "
    "--discovery-token-ca-cert-hash sha256:deadbeef --control-plane --certificate-key 0a1b2c"
)


def test_redact_masks_join_secrets():
    out = redact(JOIN)
    assert "abcdef.0123456789abcdef" not in out
    assert "deadbeef" not in out
    assert "0a1b2c" not in out
    assert "--token ******" in out
    assert "lb.kubeseed.local:6443" in out


def test_redact_masks_kubeconfig_payloads():
    b64 = base64.b64encode(b"users:\n- user:\n    token: admin-secret\n" * 10).decode()
    for cmd in (commands.write_root_kubeconfig(b64), commands.write_user_kubeconfig(b64)):
        out = redact(cmd)
        assert b64 not in out
        assert "echo ****** | base64 -d" in out
    # bare stdout of `base64 --wrap=0`
    assert redact(b64) == "******"


def test_remote_command_error_message_is_masked():
    err = RemoteCommandError("node2", commands.join(JOIN), 1, "", "join failed")
    assert "abcdef.0123456789abcdef" not in str(err)
    assert "0a1b2c" not in str(err)
    assert "join failed" in str(err)
    assert err.command == commands.join(JOIN)


def test_init_logging_writes_redacted_trace(tmp_path):
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="kubeseed-log-test")
    try:
        logger.debug("[node2] $ %s", JOIN)
        for h in logger.handlers:
            h.flush()

        assert log_path.parent == tmp_path
        assert run_id in log_path.name
        text = log_path.read_text()
        assert "--token ******" in text
        assert "abcdef.0123456789abcdef" not in text
    finally:
        for h in list(logger.handlers):
            h.close()
            logger.removeHandler(h)


def test_log_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("KUBESEED_LOG_DIR", str(tmp_path / "logs"))
    logger, _, log_path = init_logging(name="kubeseed-env-test")
    try:
        assert log_path.parent == tmp_path / "logs"
    finally:
        for h in list(logger.handlers):
            h.close()
            logger.removeHandler(h)
