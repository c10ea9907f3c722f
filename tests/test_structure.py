from flowmend.structural.checker import layout_position, validate_structure


def _node(name, **extra):
    node = {
        "id": name.lower().replace(" ", "-"),
        "name": name,
        "type": "n8n-nodes-base.code",
        "typeVersion": 2,
        "position": [250, 300],
        "parameters": {},
    }
    node.update(extra)
    return node


def _workflow(nodes, **extra):
    wf = {"name": "wf", "nodes": nodes, "connections": {}, "settings": {}, "active": False}
    wf.update(extra)
    return wf


def test_missing_nodes_reports_single_error():
    for wf in ({"name": "x"}, {}, {"nodes": "not a list"}, {"nodes": None, "connections": 3}):
        report = validate_structure(wf)
        assert report.errors == ["Workflow must have a nodes array"]
        assert report.warnings == []


def test_non_object_document():
    report = validate_structure(["nodes"])
    assert report.errors == ["Workflow must be a JSON object"]


def test_empty_nodes_and_missing_name():
    report = validate_structure({"nodes": [], "connections": {}, "settings": {}, "active": False})
    assert "Workflow must have a name" in report.errors
    assert "Workflow must have at least one node" in report.errors


def test_clean_workflow_has_no_findings():
    report = validate_structure(_workflow([_node("A"), _node("B")]))
    assert report.valid
    assert report.findings == []


def test_workflow_level_warnings():
    wf = {"name": "wf", "nodes": [_node("A")]}
    report = validate_structure(wf)
    assert report.valid
    assert "Workflow has no connections defined" in report.warnings
    assert "Workflow should have active field (set to false)" in report.warnings
    assert 'Add "settings": {} to workflow' in report.suggestions


def test_node_field_errors():
    bad = {"position": [0, 0], "parameters": {}}
    report = validate_structure(_workflow([bad]))
    assert "Node 1 (unnamed): Missing id" in report.errors
    assert "Node 1: Missing name" in report.errors
    assert "Node 1 (unnamed): Missing type" in report.errors
    assert "Node 1 (unnamed): Missing typeVersion" in report.warnings


def test_duplicates_are_errors():
    a = _node("A")
    b = _node("A")
    report = validate_structure(_workflow([a, b]))
    assert any("Duplicate id" in e for e in report.errors)
    assert any('Duplicate name "A"' in e for e in report.errors)


def test_bad_position_suggests_layout_slot():
    node = _node("Second", position=[10])
    report = validate_structure(_workflow([_node("First"), node]))
    assert "Node 2 (Second): Invalid or missing position" in report.warnings
    x, y = layout_position(1)
    assert f'Add position: [{x}, {y}] to node "Second"' in report.suggestions


def test_non_object_node_entry():
    report = validate_structure(_workflow([_node("A"), "junk"]))
    assert "Node 2: must be an object" in report.errors


def test_parameters_checks():
    no_params = _node("A")
    del no_params["parameters"]
    wrong = _node("B", parameters=[1, 2])
    report = validate_structure(_workflow([no_params, wrong]))
    assert "Node 1 (A): Missing parameters object" in report.warnings
    assert "Node 2 (B): parameters must be an object" in report.warnings
    assert report.valid


def test_non_string_names_are_errors():
    other = _node("Other")
    other["name"] = ["Code"]
    third = _node("Third")
    third["name"] = {"x": 1}
    nodes = [_node("Code"), other, third]
    report = validate_structure(_workflow(nodes))
    assert report.errors == [
        "Node 2: name must be a string, got list",
        "Node 3: name must be a string, got dict",
    ]
