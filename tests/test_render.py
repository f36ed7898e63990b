from __future__ import annotations

import json
import stat

from argus_onboarding import render
from argus_onboarding.models import RunConfig


def _config(**overrides) -> RunConfig:
    values = {"customer_name": "acme-corp", "region": "us-west-2"}
    values.update(overrides)
    return RunConfig(**values)


def test_render_writes_three_files(tmp_path) -> None:
    artifact = render.render_deployment(
        _config(), "a" * 64, deployments_root=tmp_path, module_source="../mod"
    )

    assert artifact.directory == tmp_path / "acme-corp-us-west-2"
    assert sorted(p.name for p in artifact.directory.iterdir()) == [
        "main.tf.json",
        "terraform.tfvars.json",
        "variables.tf.json",
    ]
    secrets = json.loads(artifact.secrets_file.read_text())
    assert secrets == {"agent_api_key": "a" * 64}


def test_secrets_file_is_owner_only(tmp_path) -> None:
    artifact = render.render_deployment(
        _config(), "b" * 64, deployments_root=tmp_path, module_source="../mod"
    )

    mode = stat.S_IMODE(artifact.secrets_file.stat().st_mode)
    assert mode == 0o600


def test_render_is_deterministic_apart_from_key(tmp_path) -> None:
    first = render.render_deployment(
        _config(), "1" * 64, deployments_root=tmp_path, module_source="../mod"
    )
    main_before = first.main_file.read_text()
    variables_before = first.variables_file.read_text()

    second = render.render_deployment(
        _config(), "2" * 64, deployments_root=tmp_path, module_source="../mod"
    )

    assert second.directory == first.directory
    assert second.main_file.read_text() == main_before
    assert second.variables_file.read_text() == variables_before
    assert json.loads(second.secrets_file.read_text())["agent_api_key"] == "2" * 64


def test_main_document_without_state_bucket_has_no_backend() -> None:
    document = render.build_main_document(_config(), "../mod")

    assert "backend" not in document["terraform"]
    module = document["module"]["argus_agent_ec2"]
    assert module["source"] == "../mod"
    assert module["agent_api_key"] == "${var.agent_api_key}"
    assert document["output"]["external_id"]["sensitive"] is True
    assert "sensitive" not in document["output"]["agent_instance_id"]


def test_main_document_with_state_bucket() -> None:
    document = render.build_main_document(_config(state_bucket="tf-state"), "../mod")

    assert document["terraform"]["backend"] == {
        "s3": {
            "bucket": "tf-state",
            "key": "argus-agent/acme-corp-us-west-2/terraform.tfstate",
            "region": "us-west-2",
        }
    }


def test_variables_carry_run_config_defaults() -> None:
    config = _config(
        instance_type="t3.large",
        environment="dev",
        enable_ssh=True,
        backend_url="https://staging.example.com",
    )

    variables = render.build_variables_document(config)["variable"]

    assert variables["customer_name"]["default"] == "acme-corp"
    assert variables["instance_type"]["default"] == "t3.large"
    assert variables["environment"]["default"] == "dev"
    assert variables["enable_ssh_access"] == {
        "description": "Enable SSH access",
        "type": "bool",
        "default": True,
    }
    assert variables["auto_scaling_enabled"]["default"] is False
    assert variables["argus_backend_url"]["default"] == "https://staging.example.com"
    assert "default" not in variables["agent_api_key"]
    assert variables["agent_api_key"]["sensitive"] is True


def test_values_needing_escapes_survive_serialisation() -> None:
    config = _config(backend_url='https://example.com/"quoted"?a=${b}')

    text = render.dumps(render.build_variables_document(config))

    parsed = json.loads(text)
    assert parsed["variable"]["argus_backend_url"]["default"] == 'https://example.com/"quoted"?a=${b}'
