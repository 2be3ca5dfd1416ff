"""Tests for the template manifest loader and resource discovery."""

import pytest

from fineract_seed.core.discovery import discover_templates, discover_workbooks
from fineract_seed.core.manifest import DEFAULT_MANIFEST, ManifestError, TemplateSpec, load_manifest
from fineract_seed.core.models import HttpMethod


class TestLoadManifest:
    def test_missing_file_uses_builtin_table(self, tmp_path):
        manifest = load_manifest(tmp_path / "manifest.yaml")
        assert manifest is DEFAULT_MANIFEST
        assert manifest.spec_for("Staffs.xls").endpoint == "staff/uploadtemplate"
        assert manifest.spec_for("data/SavingsAccount.xlsx").endpoint == "savingsaccounts/uploadtemplate"

    def test_valid_manifest(self, tmp_path):
        path = tmp_path / "manifest.yaml"
        path.write_text(
            "templates:\n"
            "  Offices.xls:\n"
            "    endpoint: offices/uploadtemplate\n"
            "  ClientTemplate:\n"
            "    endpoint: clients/template\n"
            "    method: GET\n"
            "    params:\n"
            "      officeId: '1'\n"
        )
        manifest = load_manifest(path)
        assert manifest.spec_for("offices.XLS").endpoint == "offices/uploadtemplate"
        spec = manifest.spec_for("ClientTemplate.xlsx")
        assert spec.method == HttpMethod.GET
        assert spec.params == {"officeId": "1"}
        assert manifest.spec_for("Unknown.xls") is None

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "manifest.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ManifestError, match="expected a YAML mapping"):
            load_manifest(path)

    def test_invalid_method(self, tmp_path):
        path = tmp_path / "manifest.yaml"
        path.write_text("templates:\n  Offices:\n    endpoint: offices/uploadtemplate\n    method: DELETE\n")
        with pytest.raises(ManifestError):
            load_manifest(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "manifest.yaml"
        path.write_text("templates: [unclosed\n")
        with pytest.raises(ManifestError):
            load_manifest(path)

    def test_empty_file_is_empty_manifest(self, tmp_path):
        path = tmp_path / "manifest.yaml"
        path.write_text("")
        assert load_manifest(path).templates == {}


class TestTemplateSpec:
    def test_client_upload_gets_legal_form(self):
        spec = TemplateSpec(endpoint="clients/uploadtemplate")
        assert spec.resolved_params() == {"legalFormType": "CLIENTS_PERSON"}
        assert spec.resolved_entity_type() == "clients"

    def test_explicit_values_win(self):
        spec = TemplateSpec(
            endpoint="clients/uploadtemplate",
            params={"legalFormType": "CLIENTS_ENTITY"},
            entity_type="entities",
        )
        assert spec.resolved_params() == {"legalFormType": "CLIENTS_ENTITY"}
        assert spec.resolved_entity_type() == "entities"

    def test_no_entity_type_for_offices(self):
        assert TemplateSpec(endpoint="offices/uploadtemplate").resolved_entity_type() is None


class TestDiscovery:
    def test_workbooks_and_templates_are_separate(self, tmp_path):
        (tmp_path / "workbook-templates").mkdir()
        for name in ("Roles.xls", "Clients.xlsx", "readme.txt", "~$Roles.xls"):
            (tmp_path / "workbook-templates" / name).write_bytes(b"")
        for name in ("Offices.xls", "Users.xlsx", "manifest.yaml"):
            (tmp_path / name).write_bytes(b"")

        workbooks = discover_workbooks(tmp_path, "workbook-templates")
        templates = discover_templates(tmp_path)

        assert [p.name for p in workbooks] == ["Clients.xlsx", "Roles.xls"]
        assert [p.name for p in templates] == ["Offices.xls", "Users.xlsx"]

    def test_missing_directory(self, tmp_path):
        assert discover_workbooks(tmp_path, "workbook-templates") == []
