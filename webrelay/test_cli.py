from unittest.mock import patch

import pytest

from webrelay import cli
from webrelay.reverse_proxy import ReverseProxy
from webrelay.routing import App
from webrelay.vars import PROXY_HOST, PROXY_PORT, SERVER_PORT


def test_proxy_defaults():
    args = cli.parse_args(["proxy"])

    assert args.command == "proxy"
    assert args.host == PROXY_HOST
    assert args.port == PROXY_PORT
    assert isinstance(cli.build_target(args), ReverseProxy)


def test_serve_with_basic_auth(tmp_path):
    args = cli.parse_args(
        ["serve", "--public-dir", str(tmp_path), "--basic-auth", "user:pa:ss"]
    )

    target = cli.build_target(args)

    assert args.port == SERVER_PORT
    assert isinstance(target, App)
    assert target.credentials == ("user", "pa:ss", "Restricted")
    assert len(target.rules) == 1


def test_basic_auth_must_have_password(tmp_path):
    with pytest.raises(SystemExit):
        cli.parse_args(["serve", "--public-dir", str(tmp_path), "--basic-auth", "user"])


def test_main_runs_server(tmp_path):
    with patch.object(cli, "run") as run, patch.object(cli, "create_app") as create_app:
        cli.main(["serve", "--public-dir", str(tmp_path), "--port", "9001"])

    target = create_app.call_args.args[0]
    assert isinstance(target, App)
    run.assert_called_once_with(create_app.return_value, cli.SERVER_HOST, 9001)
