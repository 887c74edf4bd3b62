from pathlib import Path

import pytest

from skylaunch.config import (
    LaunchSettings,
    _deep_merge,
    build_request,
    load_config,
    load_request,
    load_settings,
)
from skylaunch.exceptions import ConfigError
from skylaunch.types import AllocateElasticIp, NoElasticIp, UseExistingElasticIp

pytestmark = [pytest.mark.xdist_group("unit")]

BASE = {"ami": "ami-1", "instance_type": "t3.micro"}


class TestDeepMerge:
    def test_shallow_override(self):
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self):
        base = {"instance": {"ami": "ami-1", "regions": {"eu-west-1": {"ami": "ami-2"}}}}
        override = {"instance": {"regions": {"eu-west-1": {"instance_type": "t3.large"}}}}
        result = _deep_merge(base, override)
        assert result["instance"]["regions"]["eu-west-1"] == {"ami": "ami-2", "instance_type": "t3.large"}
        assert result["instance"]["ami"] == "ami-1"

    def test_lists_are_replaced(self):
        assert _deep_merge({"a": [1, 2]}, {"a": [3]}) == {"a": [3]}


class TestLoadConfig:
    def test_project_overrides_global(self, tmp_path: Path):
        global_toml = tmp_path / "defaults.toml"
        global_toml.write_text('[instance]\nami = "ami-global"\ninstance_type = "t3.micro"\n')
        project_dir = tmp_path / "project"
        project_dir.mkdir()
        (project_dir / "skylaunch.toml").write_text('[instance]\nami = "ami-project"\n')

        result = load_config(project_dir=project_dir, global_path=global_toml)

        assert result["instance"] == {"ami": "ami-project", "instance_type": "t3.micro"}

    def test_no_files_returns_empty_sections(self, tmp_path: Path):
        result = load_config(project_dir=tmp_path / "nope", global_path=tmp_path / "nope.toml")
        assert result == {"instance": {}, "settings": {}}

    def test_invalid_toml(self, tmp_path: Path):
        (tmp_path / "skylaunch.toml").write_text("[instance\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(project_dir=tmp_path, global_path=tmp_path / "nope.toml")


class TestBuildRequest:
    def test_minimal(self):
        request = build_request(dict(BASE))
        assert request.ami == "ami-1"
        assert request.region == "us-east-1"
        assert request.elastic_ip == NoElasticIp()
        assert request.ready_timeout == 120

    def test_region_overlay(self):
        raw = {**BASE, "regions": {"eu-west-1": {"ami": "ami-eu", "subnet_id": "subnet-eu"}}}
        request = build_request(raw, "eu-west-1")
        assert (request.region, request.ami, request.subnet_id) == ("eu-west-1", "ami-eu", "subnet-eu")

    def test_other_region_keeps_defaults(self):
        raw = {**BASE, "regions": {"eu-west-1": {"ami": "ami-eu"}}}
        assert build_request(raw, "us-west-2").ami == "ami-1"

    def test_region_from_table(self):
        raw = {**BASE, "region": "ap-south-1", "regions": {"ap-south-1": {"ami": "ami-ap"}}}
        assert build_request(raw).ami == "ami-ap"

    def test_block_devices_and_tags(self):
        raw = {
            **BASE,
            "security_groups": ["ssh", "web"],
            "tags": {"Name": "web", "Team": 7},
            "block_devices": [
                {"DeviceName": "/dev/sdb", "VirtualName": "ephemeral0"},
                {"DeviceName": "/dev/sdf", "Ebs.VolumeSize": 50, "Ebs.DeleteOnTermination": False},
            ],
        }
        request = build_request(raw)

        assert request.security_groups == ("ssh", "web")
        assert dict(request.tags) == {"Name": "web", "Team": "7"}
        ephemeral, ebs = request.block_devices
        assert ephemeral.is_ephemeral
        assert ebs.is_ebs
        assert ebs.volume_size == 50
        assert ebs.delete_on_termination is False

    def test_elastic_ip_modes(self):
        assert build_request({**BASE, "elastic_ip": "198.51.100.7"}).elastic_ip == UseExistingElasticIp(
            "198.51.100.7",
        )
        assert build_request({**BASE, "allocate_elastic_ip": "vpc"}).elastic_ip == AllocateElasticIp("vpc")

    def test_elastic_ip_modes_are_exclusive(self):
        with pytest.raises(ConfigError, match="not both"):
            build_request({**BASE, "elastic_ip": "198.51.100.7", "allocate_elastic_ip": "vpc"})

    def test_missing_ami(self):
        with pytest.raises(ConfigError, match="missing 'ami'"):
            build_request({"instance_type": "t3.micro"})

    def test_unknown_option(self):
        with pytest.raises(ConfigError, match="flavor"):
            build_request({**BASE, "flavor": "large"})


class TestLoadRequest:
    def test_from_project_file(self, tmp_path: Path):
        (tmp_path / "skylaunch.toml").write_text(
            '[instance]\n'
            'ami = "ami-1"\n'
            'instance_type = "t3.micro"\n'
            'keypair_name = "deploy"\n'
            'ready_timeout = 300\n'
            'volume_timeout = 60\n'
            '\n'
            '[[instance.block_devices]]\n'
            'DeviceName = "/dev/sdf"\n'
            '"Ebs.VolumeSize" = 20\n'
            '\n'
            '[instance.regions.eu-west-1]\n'
            'ami = "ami-eu"\n'
        )

        request = load_request("eu-west-1", project_dir=tmp_path, global_path=tmp_path / "nope.toml")

        assert request.ami == "ami-eu"
        assert request.keypair_name == "deploy"
        assert request.ready_timeout == 300
        assert request.volume_tries == 30
        assert request.block_devices[0].volume_size == 20


class TestLoadSettings:
    def test_defaults(self, tmp_path: Path):
        settings = load_settings(project_dir=tmp_path, global_path=tmp_path / "nope.toml")
        assert settings == LaunchSettings()
        assert (settings.batch_size, settings.batch_cooldown) == (10, 30.0)

    def test_overrides(self, tmp_path: Path):
        (tmp_path / "skylaunch.toml").write_text("[settings]\nbatch_size = 5\nssh_port = 2222\n")
        settings = load_settings(project_dir=tmp_path, global_path=tmp_path / "nope.toml")
        assert (settings.batch_size, settings.ssh_port) == (5, 2222)

    def test_unknown_setting(self, tmp_path: Path):
        (tmp_path / "skylaunch.toml").write_text("[settings]\nbatch = 5\n")
        with pytest.raises(ConfigError, match="batch"):
            load_settings(project_dir=tmp_path, global_path=tmp_path / "nope.toml")
