import getpass

import pytest

from provisor.config import ProvisorConfig
from provisor.errors import InvalidPlanError, ProvisorError
from provisor.host import HostContext, resolve_invoking_user


def test_invoking_user_prefers_explicit_then_sudo_user(monkeypatch):
    monkeypatch.setenv("SUDO_USER", "kali")
    assert resolve_invoking_user("operator") == "operator"
    assert resolve_invoking_user() == "kali"


def test_discover_uses_home_as_default_install_root(monkeypatch):
    monkeypatch.delenv("SUDO_USER", raising=False)
    user = getpass.getuser()

    host = HostContext.discover(ProvisorConfig(user=user, work_dir="/var/tmp"))

    assert host.user == user
    assert host.install_root == host.home
    assert host.expand("{install_root}/x") == f"{host.home}/x"
    assert host.path("{work_dir}/src").as_posix() == "/var/tmp/src"


def test_discover_honours_install_root(tmp_path):
    host = HostContext.discover(
        ProvisorConfig(user=getpass.getuser(), install_root=str(tmp_path))
    )
    assert host.install_root == tmp_path
    assert host.expand("{user}") == host.user


def test_discover_rejects_unknown_user():
    with pytest.raises(ProvisorError):
        HostContext.discover(ProvisorConfig(user="no-such-user-provisor"))


def test_expand_leaves_shell_braces_alone(host):
    line = "for i in {1..3}; do echo ${HOME} $i; done > {home}/out"
    assert host.expand(line) == f"for i in {{1..3}}; do echo ${{HOME}} $i; done > {host.home}/out"
    assert host.expand("awk '{print $1}'") == "awk '{print $1}'"


def test_expand_rejects_unknown_placeholder(host):
    with pytest.raises(InvalidPlanError) as exc_info:
        host.expand("{homedir}/Tools")
    assert "{homedir}" in str(exc_info.value)
