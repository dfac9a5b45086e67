from pathlib import Path

import pytest

from arc.config import (
    ArcConfig,
    ProcessSpec,
    ServiceSite,
    SshConfig,
    StaticSite,
    TunnelConfig,
    build_config,
)
from arc.exceptions import ConfigurationError


def _static(name: str, domain: str, output: str = "public") -> dict[str, object]:
    return {"kind": "static", "name": name, "domain": domain, "output_path": output}


def _service(name: str, domain: str, port: int) -> dict[str, object]:
    return {
        "kind": "service",
        "name": name,
        "domain": domain,
        "port": port,
        "process": {"command": "api"},
    }


class TestSiteUnion:
    def test_discriminates_static_and_service_sites(self) -> None:
        config = build_config(
            {"sites": [_static("docs", "docs.localhost"), _service("api", "api.localhost", 9001)]}
        )

        assert isinstance(config.sites[0], StaticSite)
        assert isinstance(config.sites[1], ServiceSite)
        assert config.static_sites == (config.sites[0],)
        assert config.service_sites == (config.sites[1],)

    def test_service_defaults_health_path(self) -> None:
        config = build_config({"sites": [_service("api", "api.localhost", 9001)]})

        site = config.service_sites[0]
        assert site.health_path == "/health"
        assert site.health_url() == "http://127.0.0.1:9001/health"

    def test_rejects_unknown_kind(self) -> None:
        with pytest.raises(ConfigurationError):
            _ = build_config({"sites": [{"kind": "lambda", "name": "x", "domain": "x"}]})


class TestUniqueness:
    def test_duplicate_service_ports_fail_validation(self) -> None:
        with pytest.raises(ConfigurationError, match="port 8000"):
            _ = build_config(
                {
                    "sites": [
                        _service("one", "one.localhost", 8000),
                        _service("two", "two.localhost", 8000),
                    ]
                }
            )

    def test_duplicate_names_across_kinds_fail_validation(self) -> None:
        with pytest.raises(ConfigurationError, match="duplicate site name"):
            _ = build_config(
                {
                    "sites": [
                        _static("app", "static.localhost"),
                        _service("app", "api.localhost", 9001),
                    ]
                }
            )

    def test_tunnel_process_name_must_not_match_a_site(self) -> None:
        with pytest.raises(ConfigurationError, match="tunnel.process_name 'tunnel'"):
            _ = build_config(
                {
                    "sites": [_service("tunnel", "tunnel.localhost", 9001)],
                    "tunnel": {"enabled": True, "identifier": "abc"},
                }
            )

    def test_tunnel_process_name_can_be_changed_to_avoid_a_site(self) -> None:
        config = build_config(
            {
                "sites": [_service("tunnel", "tunnel.localhost", 9001)],
                "tunnel": {"enabled": True, "identifier": "abc", "process_name": "cloudflared"},
            }
        )

        assert config.tunnel is not None
        assert config.tunnel.process_name == "cloudflared"

    def test_disabled_tunnel_does_not_reserve_its_name(self) -> None:
        config = build_config(
            {
                "sites": [_service("tunnel", "tunnel.localhost", 9001)],
                "tunnel": {"enabled": False},
            }
        )

        assert [site.name for site in config.sites] == ["tunnel"]

    def test_duplicate_domains_are_case_insensitive(self) -> None:
        with pytest.raises(ConfigurationError, match="duplicate site domain"):
            _ = build_config(
                {"sites": [_static("a", "App.localhost"), _static("b", "app.localhost")]}
            )

    def test_distinct_sites_validate(self) -> None:
        config = build_config(
            {
                "sites": [
                    _static("a", "a.localhost"),
                    _service("b", "b.localhost", 9001),
                    _service("c", "c.localhost", 9002),
                ]
            }
        )

        assert [site.name for site in config.sites] == ["a", "b", "c"]


class TestFieldValidation:
    @pytest.mark.parametrize("port", [80, 1024, 65536])
    def test_service_port_out_of_range(self, port: int) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _ = build_config({"sites": [_service("api", "api.localhost", port)]})

        assert exc_info.value.key == "sites.0.service.port"

    @pytest.mark.parametrize("name", ["", "  ", "my api"])
    def test_site_name_must_be_non_empty_without_whitespace(self, name: str) -> None:
        with pytest.raises(ConfigurationError):
            _ = build_config({"sites": [_static(name, "a.localhost")]})

    def test_health_path_must_start_with_slash(self) -> None:
        site = _service("api", "api.localhost", 9001)
        site["health_path"] = "health"

        with pytest.raises(ConfigurationError, match="health_path"):
            _ = build_config({"sites": [site]})

    def test_proxy_port_out_of_range(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _ = build_config({"proxy_port": 70000})

        assert exc_info.value.key == "proxy_port"
        assert exc_info.value.value == 70000

    def test_unknown_top_level_key_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _ = build_config({"proxy_prot": 8080})

        assert exc_info.value.key == "proxy_prot"


class TestProcessSpec:
    def test_requires_executable_or_command(self) -> None:
        with pytest.raises(ValueError, match="exactly one"):
            _ = ProcessSpec()

    def test_rejects_both_executable_and_command(self) -> None:
        with pytest.raises(ValueError, match="exactly one"):
            _ = ProcessSpec(executable="./api", command="api")

    def test_program_prefers_whichever_is_set(self) -> None:
        assert ProcessSpec(executable="./bin/api").program == "./bin/api"
        assert ProcessSpec(command="npm").program == "npm"


class TestPathResolution:
    def test_paths_resolve_against_base_dir(self, tmp_path: Path) -> None:
        config = build_config(
            {
                "base_dir": tmp_path,
                "log_dir": "logs",
                "sites": [
                    _static("docs", "docs.localhost", "site/public"),
                    {
                        "kind": "service",
                        "name": "api",
                        "domain": "api.localhost",
                        "port": 9001,
                        "process": {"working_dir": "backend", "executable": "bin/api"},
                    },
                ],
            }
        )

        assert config.log_path == tmp_path / "logs"
        assert config.pid_dir == tmp_path / ".pid"
        assert config.output_path_for(config.static_sites[0]) == tmp_path / "site/public"
        api = config.service_sites[0]
        assert config.working_dir_for(api) == tmp_path / "backend"
        assert config.program_for(api) == str(tmp_path / "backend/bin/api")

    def test_command_is_left_for_path_lookup(self, tmp_path: Path) -> None:
        config = build_config(
            {"base_dir": tmp_path, "sites": [_service("api", "api.localhost", 9001)]}
        )

        assert config.program_for(config.service_sites[0]) == "api"

    def test_absolute_paths_are_kept(self, tmp_path: Path) -> None:
        config = build_config({"base_dir": tmp_path, "log_dir": "/var/log/arc"})

        assert config.log_path == Path("/var/log/arc")

    def test_site_named(self) -> None:
        config = build_config({"sites": [_static("docs", "docs.localhost")]})

        assert config.site_named("docs") is config.sites[0]
        assert config.site_named("missing") is None


class TestExtensions:
    def test_ssh_requires_domain_when_enabled(self) -> None:
        with pytest.raises(ValueError, match="ssh.domain"):
            _ = SshConfig(enabled=True)

    def test_tunnel_defaults(self) -> None:
        tunnel = TunnelConfig(enabled=True, identifier="abc-123")

        assert tunnel.command_args() == ["tunnel", "run", "abc-123"]
        assert tunnel.resolved_credentials_path() == Path(
            "~/.cloudflared/abc-123.json"
        ).expanduser()

    def test_tunnel_args_override(self) -> None:
        tunnel = TunnelConfig(enabled=True, identifier="abc", args=("run", "--url", "x"))

        assert tunnel.command_args() == ["run", "--url", "x"]

    def test_tunnel_enabled_requires_section(self) -> None:
        assert not ArcConfig().tunnel_enabled
        assert not ArcConfig(tunnel=TunnelConfig()).tunnel_enabled
        assert ArcConfig(tunnel=TunnelConfig(enabled=True)).tunnel_enabled

    def test_config_is_immutable(self) -> None:
        config = ArcConfig()

        with pytest.raises(ValueError, match="frozen"):
            config.proxy_port = 9000  # pyright: ignore[reportAttributeAccessIssue]
