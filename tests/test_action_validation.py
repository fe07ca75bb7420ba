from sceneforge.actions.base import ActionKind, ActionName
from sceneforge.actions.registry import DEFAULT_CATALOG, build_catalog
from sceneforge.actions.schemas import parse_steps
from sceneforge.actions.validation import validate_action


def test_catalog_covers_every_action():
    catalog = build_catalog()
    assert sorted(catalog.names()) == sorted(action.value for action in ActionName)
    assert catalog.get("unknown_tool") is None
    assert catalog.get("start_plan").context_only
    assert not catalog.get("create_instance").context_only
    assert {spec.name for spec in catalog.by_kind(ActionKind.COMPLETION)} == {
        ActionName.COMPLETE,
        ActionName.ATTEMPT_COMPLETION,
        ActionName.FINAL_MESSAGE,
    }


def test_create_instance_requires_parent_or_path():
    outcome = validate_action("create_instance", {"className": "Part"})
    assert not outcome.ok
    assert any("parentPath is required" in failure.message for failure in outcome.failures)


def test_create_instance_normalizes_aliases():
    outcome = validate_action(
        "create_instance", {"class": "Part", "parent": "game.Workspace", "name": "Base"}
    )
    assert outcome.ok
    assert outcome.fields["className"] == "Part"
    assert outcome.fields["parentPath"] == "game.Workspace"
    assert outcome.fields["props"] == {"Name": "Base"}


def test_set_properties_rejects_empty_props():
    outcome = validate_action("set_properties", {"path": "game.Workspace.Base", "props": {}})
    assert not outcome.ok
    assert outcome.failures[0].path == "props"


def test_failures_name_the_field():
    outcome = validate_action("search_assets", {"query": "tree", "limit": 500})
    assert not outcome.ok
    assert outcome.failures[0].path == "limit"
    assert "limit" in outcome.render_failures()


def test_insert_asset_accepts_asset_uri():
    outcome = validate_action("insert_asset", {"assetId": "rbxassetid://1234"})
    assert outcome.ok
    assert outcome.fields["assetId"] == 1234


def test_edit_requires_edits_or_files():
    outcome = validate_action("apply_edit", {"path": "game.ServerScriptService.Main"})
    assert not outcome.ok
    assert "edits or files is required" in outcome.render_failures()


def test_edit_accepts_single_edit_object():
    outcome = validate_action(
        "show_diff",
        {
            "path": "game.ServerScriptService.Main",
            "edits": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 0}, "text": "-- hi\n"},
        },
    )
    assert outcome.ok
    assert len(outcome.fields["edits"]) == 1


def test_parse_steps_accepts_several_shapes():
    assert parse_steps('["Build base", "Add walls"]') == ["Build base", "Add walls"]
    assert parse_steps("<li>Build base</li><li>Add walls</li>") == ["Build base", "Add walls"]
    assert parse_steps("- Build base\n- Add walls\n") == ["Build base", "Add walls"]


def test_start_plan_requires_a_step():
    outcome = validate_action("start_plan", {"steps": []})
    assert not outcome.ok


def test_unknown_action_is_a_failure_not_an_exception():
    outcome = validate_action("teleport_player", {})
    assert not outcome.ok
    assert "unknown action" in outcome.failures[0].message


def test_default_catalog_is_shared():
    assert DEFAULT_CATALOG.get(ActionName.COMPLETE) is not None
