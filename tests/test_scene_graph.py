from sceneforge.scene_graph import (
    SceneGraphSimulator,
    anchor_path,
    is_root_path,
    join_path,
    normalize_path,
    split_path,
)


def test_normalize_path_is_idempotent():
    for raw in [
        "Workspace.Base",
        "game.workspace.Base",
        'game.Workspace["My Part"].Handle',
        "game.Workspace['Odd.Name']",
        "ServerScriptService.Main",
    ]:
        once = normalize_path(raw)
        assert normalize_path(once) == once


def test_normalize_path_qualifies_service_heads():
    assert normalize_path("Workspace.Base") == "game.Workspace.Base"
    assert normalize_path("game.workspace.Base") == "game.Workspace.Base"
    assert normalize_path('game.Workspace["My Part"]') == 'game.Workspace["My Part"]'
    assert normalize_path("") is None


def test_join_and_split_bracket_names():
    path = join_path("game.Workspace", "My Part")
    assert path == 'game.Workspace["My Part"]'
    assert split_path(path) == ("game.Workspace", "My Part")
    assert split_path("game") == (None, "game")


def test_root_paths():
    assert is_root_path("game")
    assert is_root_path("Workspace")
    assert not is_root_path("game.Workspace.Base")


def test_create_under_root_container():
    scene = SceneGraphSimulator()
    scene.apply_op(
        {"op": "create_instance", "className": "Part", "parentPath": "game.Workspace", "props": {"Name": "Base"}}
    )
    assert list(scene.nodes) == ["game.Workspace.Base"]
    node = scene.get("Workspace.Base")
    assert node.class_name == "Part"
    assert node.parent_path == "game.Workspace"


def test_rename_rewrites_descendants():
    scene = SceneGraphSimulator()
    scene.create("Model", "game.Workspace", {"Name": "Castle"})
    scene.create("Part", "game.Workspace.Castle", {"Name": "Wall"})
    scene.create("Part", "game.Workspace.Castle.Wall", {"Name": "Brick"})
    scene.create("Part", "game.Workspace", {"Name": "CastleGate"})

    new_path = scene.rename("game.Workspace.Castle", "Fort")

    assert new_path == "game.Workspace.Fort"
    assert sorted(scene.nodes) == [
        "game.Workspace.CastleGate",
        "game.Workspace.Fort",
        "game.Workspace.Fort.Wall",
        "game.Workspace.Fort.Wall.Brick",
    ]
    assert scene.get("game.Workspace.Fort.Wall.Brick").parent_path == "game.Workspace.Fort.Wall"
    assert scene.get("game.Workspace.Fort").props["Name"] == "Fort"


def test_set_properties_name_renames():
    scene = SceneGraphSimulator()
    scene.create("Part", "game.Workspace", {"Name": "Base"})
    scene.set_properties("game.Workspace.Base", {"Name": "Floor", "Anchored": True})
    assert scene.get("game.Workspace.Base") is None
    floor = scene.get("game.Workspace.Floor")
    assert floor.props["Anchored"] is True


def test_delete_removes_subtree_only():
    scene = SceneGraphSimulator()
    scene.create("Model", "game.Workspace", {"Name": "House"})
    scene.create("Part", "game.Workspace.House", {"Name": "Door"})
    scene.create("Part", "game.Workspace", {"Name": "HouseSign"})
    removed = scene.delete("game.Workspace.House")
    assert sorted(removed) == ["game.Workspace.House", "game.Workspace.House.Door"]
    assert list(scene.nodes) == ["game.Workspace.HouseSign"]


def test_list_children_is_bounded_and_ordered():
    scene = SceneGraphSimulator()
    for name in ["zeta", "Alpha", "mid"]:
        scene.create("Part", "game.Workspace", {"Name": name})
    scene.create("Part", "game.Workspace.Alpha", {"Name": "Child"})

    direct = scene.list_children("game.Workspace", depth=1)
    assert [entry["name"] for entry in direct] == ["Alpha", "mid", "zeta"]

    deep = scene.list_children("game.Workspace", depth=2)
    assert [entry["path"] for entry in deep][-1] == "game.Workspace.Alpha.Child"

    assert scene.list_children("game.Workspace", depth=0) == []
    assert len(scene.list_children("game.Workspace", depth=2, max_nodes=2)) == 2


def test_get_properties_subset_and_attributes():
    scene = SceneGraphSimulator()
    scene.create("Part", "game.Workspace", {"Name": "Base", "Color": "Red", "@Health": 10})
    assert scene.get_properties("game.Workspace.Base", keys=["Color", "Missing"]) == {"Color": "Red"}
    full = scene.get_properties("game.Workspace.Base", include_attributes=True)
    assert full["@attributes"] == {"Health": 10}
    assert scene.get_properties("game.Workspace.Nope") == {}


def test_hydrate_replaces_table():
    scene = SceneGraphSimulator()
    scene.create("Part", "game.Workspace", {"Name": "Old"})
    count = scene.hydrate(
        [
            {"path": "Workspace.Spawn", "className": "SpawnLocation"},
            {"path": "game.Workspace.Spawn.Decal", "className": "Decal"},
            {"className": "Part"},
        ]
    )
    assert count == 2
    assert sorted(scene.nodes) == ["game.Workspace.Spawn", "game.Workspace.Spawn.Decal"]


def test_apply_op_result_records_reported_ops():
    simulator = SceneGraphSimulator()
    assert simulator.apply_op_result(
        {"op": "create_instance", "className": "Part", "parentPath": "game.Workspace", "props": {"Name": "Wall"}}
    )
    assert simulator.exists("game.Workspace.Wall")
    assert not simulator.apply_op_result({"op": "create_instance", "className": "Part"})
    assert not simulator.apply_op_result("done")
    assert simulator.apply_op_result({"op": "delete_instance", "path": "game.Workspace.Wall"})
    assert not simulator.exists("game.Workspace.Wall")


def test_rename_onto_existing_sibling_is_refused():
    simulator = SceneGraphSimulator()
    simulator.create("Part", "game.Workspace", {"Name": "A", "Color": "red"})
    simulator.create("Part", "game.Workspace", {"Name": "B", "Color": "blue"})
    simulator.create("Folder", "game.Workspace.A", {"Name": "Inner"})

    assert simulator.rename("game.Workspace.A", "B") is None
    assert simulator.get("game.Workspace.A").props["Color"] == "red"
    assert simulator.get("game.Workspace.B").props["Color"] == "blue"
    assert simulator.exists("game.Workspace.A.Inner")
    assert not simulator.exists("game.Workspace.B.Inner")


def test_set_properties_name_collision_keeps_node():
    simulator = SceneGraphSimulator()
    simulator.create("Part", "game.Workspace", {"Name": "A"})
    simulator.create("Part", "game.Workspace", {"Name": "B"})
    node = simulator.set_properties("game.Workspace.A", {"Name": "B", "Anchored": True})
    assert node.path == "game.Workspace.A"
    assert node.props["Name"] == "A"
    assert node.props["Anchored"] is True


def test_anchor_path_places_relative_paths_under_workspace():
    assert anchor_path("Foo.Bar") == "game.Workspace.Foo.Bar"
    assert anchor_path("Workspace.Foo") == "game.Workspace.Foo"
    assert anchor_path("game.Lighting") == "game.Lighting"
    assert anchor_path(None) is None
