import copy

from flowmend.catalog.categories import NodeCategory
from flowmend.catalog.registry import default_catalog
from flowmend.repair.autofix import auto_fix, readable_credential_name, unique_id, unique_name
from flowmend.structural.connections import validate_connections
from flowmend.utils.graph import extract_edges

CATALOG = default_catalog()


def _node(name, type_="n8n-nodes-base.code", position=None, **params):
    return {
        "id": name.lower().replace(" ", "-"),
        "name": name,
        "type": type_,
        "typeVersion": 1,
        "position": position or [400, 300],
        "parameters": params,
    }


def _edge(dst, channel="main"):
    return {"node": dst, "type": channel, "index": 0}


def _categories(wf):
    return [CATALOG.category_of(n) for n in wf["nodes"]]


def test_defaults_for_garbage_input():
    for bad in (None, [], "x", {"nodes": "nope", "connections": 7, "settings": "s"}):
        fixed = auto_fix(bad)
        assert fixed["nodes"] == []
        assert fixed["connections"] == {}
        assert fixed["settings"] == {}
        assert fixed["active"] is False
        assert fixed["versionId"] == "1"


def test_input_is_not_modified():
    wf = {"name": "wf", "nodes": [_node("Code"), "junk"], "connections": {"Code": {"main": [_edge("Ghost")]}}}
    snapshot = copy.deepcopy(wf)
    auto_fix(wf, intent={"workflowKind": "scheduled-digest"})
    assert wf == snapshot


def test_digest_without_trigger_gets_one_wired_schedule():
    wf = {
        "name": "digest",
        "nodes": [_node("Format", position=[400, 300]), _node("Mail", "n8n-nodes-base.emailSend", position=[650, 300])],
        "connections": {"Format": {"main": [[_edge("Mail")]]}},
    }
    fixed = auto_fix(wf, intent={"workflowKind": "scheduled-digest", "scheduling": {"time": "7:30pm"}})

    schedules = [n for n in fixed["nodes"] if CATALOG.category_of(n) is NodeCategory.SCHEDULE_TRIGGER]
    assert len(schedules) == 1
    schedule = schedules[0]
    assert fixed["nodes"][0] is schedule
    assert schedule["parameters"]["rule"]["interval"][0]["cronExpression"] == "30 19 * * *"
    assert fixed["connections"][schedule["name"]] == {"main": [[_edge("Format")]]}
    assert schedule["position"] == [150, 300]
    # existing layout untouched
    assert fixed["nodes"][1]["position"] == [400, 300]


def test_default_trigger_is_webhook_unless_intent_hints_schedule():
    wf = {"name": "wf", "nodes": [_node("Step")], "connections": {}}
    fixed = auto_fix(wf)
    assert _categories(fixed)[0] is NodeCategory.WEBHOOK_TRIGGER
    assert fixed["nodes"][0]["parameters"]["path"]
    assert fixed["connections"]["Webhook Trigger"]["main"][0][0]["node"] == "Step"

    fixed = auto_fix(wf, intent={"triggers": ["schedule"]})
    assert _categories(fixed)[0] is NodeCategory.SCHEDULE_TRIGGER
    assert fixed["nodes"][0]["parameters"]["rule"]["interval"][0]["cronExpression"] == "0 6 * * *"


def test_no_trigger_added_to_empty_document():
    assert auto_fix({"name": "wf", "nodes": []})["nodes"] == []


def test_mail_reader_counts_as_entry():
    wf = {"name": "wf", "nodes": [_node("Inbox", "n8n-nodes-base.emailReadImap")], "connections": {}}
    assert [n["name"] for n in auto_fix(wf)["nodes"]] == ["Inbox"]


def test_required_categories_are_appended_once():
    wf = {"name": "wf", "nodes": [_node("Hook", "n8n-nodes-base.webhook")], "connections": {}}
    intent = {"requiredNodeCategories": ["email-sender", "n8n-nodes-base.emailSend", "aggregator", "mystery.thing"]}
    fixed = auto_fix(wf, intent=intent)
    assert _categories(fixed) == [NodeCategory.WEBHOOK_TRIGGER, NodeCategory.EMAIL_SENDER, NodeCategory.AGGREGATOR]
    sender = fixed["nodes"][1]
    assert sender["credentials"] == {"smtp": {"id": "USER_SMTP_CREDENTIAL_ID", "name": "USER_SMTP_CREDENTIAL_NAME"}}
    assert fixed["nodes"][2]["parameters"]["destinationFieldName"] == "data"
    # appended to the right of the last existing node
    assert sender["position"] == [650, 300]
    assert fixed["nodes"][2]["position"] == [900, 300]


def test_synthesized_names_and_ids_are_unique():
    wf = {
        "name": "wf",
        "nodes": [_node("Code", "n8n-nodes-base.code"), {"id": "webhook-trigger", "name": "Webhook Trigger",
                                                         "type": "n8n-nodes-base.httpRequest", "parameters": {}}],
        "connections": {},
    }
    fixed = auto_fix(wf)
    names = [n["name"] for n in fixed["nodes"]]
    ids = [n["id"] for n in fixed["nodes"]]
    assert names[0] == "Webhook Trigger 1"
    assert len(set(names)) == len(names)
    assert len(set(ids)) == len(ids)
    # the existing node keeps its id
    assert fixed["nodes"][2]["id"] == "webhook-trigger"


def test_node_normalization():
    wf = {
        "name": "wf",
        "nodes": [
            {"type": "n8n-nodes-base.emailSend", "parameters": "bad"},
            {"id": "dup", "name": "A", "type": "n8n-nodes-base.code"},
            {"id": "dup", "name": "B", "type": "n8n-nodes-base.code"},
            "junk",
        ],
        "connections": {},
    }
    fixed = auto_fix(wf, intent={"triggers": []})
    by_name = {n["name"]: n for n in fixed["nodes"]}
    assert "Send Email" in by_name
    assert by_name["Send Email"]["parameters"] == {}
    assert by_name["Send Email"]["typeVersion"] == 1
    assert by_name["A"]["id"] == "dup"
    assert by_name["B"]["id"] == "b"
    assert len(fixed["nodes"]) == 4


def test_string_credentials_become_objects():
    wf = {
        "name": "wf",
        "nodes": [
            _node("Mail", "n8n-nodes-base.emailSend"),
            _node("Chat", "n8n-nodes-base.slack"),
        ],
        "connections": {},
    }
    wf["nodes"][0]["credentials"] = {"smtp": "abc123", "other": "USER_SMTP_CREDENTIAL_ID"}
    wf["nodes"][1]["credentials"] = "SLACK_CREDENTIAL_ID"
    fixed = auto_fix(wf)
    mail = next(n for n in fixed["nodes"] if n["name"] == "Mail")
    chat = next(n for n in fixed["nodes"] if n["name"] == "Chat")
    assert mail["credentials"]["smtp"] == {"id": "abc123", "name": "abc123"}
    assert mail["credentials"]["other"] == {"id": "USER_SMTP_CREDENTIAL_ID", "name": "USER SMTP"}
    assert chat["credentials"] == {"slackApi": {"id": "SLACK_CREDENTIAL_ID", "name": "SLACK"}}


def test_empty_credential_strings_are_not_ids():
    wf = {
        "name": "wf",
        "nodes": [
            _node("Mail", "n8n-nodes-base.emailSend"),
            _node("Chat", "n8n-nodes-base.slack"),
            _node("Step"),
        ],
        "connections": {},
    }
    wf["nodes"][0]["credentials"] = {"smtp": "", "other": "   "}
    wf["nodes"][1]["credentials"] = ""
    wf["nodes"][2]["credentials"] = {"custom": ""}
    fixed = auto_fix(wf)
    by_name = {n["name"]: n for n in fixed["nodes"]}
    assert by_name["Mail"]["credentials"] == CATALOG.credential_placeholder(NodeCategory.EMAIL_SENDER)
    assert by_name["Chat"]["credentials"] == CATALOG.credential_placeholder(NodeCategory.SLACK)
    assert "credentials" not in by_name["Step"]
    for node in fixed["nodes"]:
        for value in node.get("credentials", {}).values():
            assert value["id"] and value["name"]


def test_readable_credential_name():
    assert readable_credential_name("USER_SMTP_CREDENTIAL_ID", "smtp") == "USER SMTP"
    assert readable_credential_name("CREDENTIAL_ID", "imap") == "imap credential"
    assert readable_credential_name("my-key", "slack") == "my-key"


def test_connections_are_filtered_and_coerced():
    wf = {
        "name": "wf",
        "nodes": [_node("Hook", "n8n-nodes-base.webhook"), _node("A"), _node("B")],
        "connections": {
            "Hook": {"main": [_edge("A"), {"node": "Ghost", "type": "main", "index": 0}]},
            "A": {"next": [[{"node": "B"}], [{"node": "B", "type": "output", "index": "x"}]]},
            "Ghost": {"main": [[_edge("A")]]},
            "B": {"main": "broken"},
        },
    }
    fixed = auto_fix(wf)
    assert fixed["connections"] == {
        "Hook": {"main": [[_edge("A")]]},
        "A": {"main": [[_edge("B")], [_edge("B")]]},
    }


def test_edges_with_non_string_targets_are_dropped():
    wf = {
        "name": "wf",
        "nodes": [_node("Hook", "n8n-nodes-base.webhook"), _node("A")],
        "connections": {
            "Hook": {"main": [[{"node": {"x": 1}, "type": "main"}, {"node": ["A"], "type": "main"}, _edge("A")]]},
        },
    }
    fixed = auto_fix(wf)
    assert fixed["connections"] == {"Hook": {"main": [[_edge("A")]]}}


def test_empty_output_slots_keep_their_position():
    wf = {
        "name": "wf",
        "nodes": [_node("Hook", "n8n-nodes-base.webhook"), _node("If"), _node("Else")],
        "connections": {"Hook": {"main": [[_edge("If")]]}, "If": {"main": [[], [_edge("Else")]]}},
    }
    fixed = auto_fix(wf)
    assert fixed["connections"]["If"] == {"main": [[], [_edge("Else")]]}


def test_ai_subnodes_get_wired_to_agent():
    wf = {
        "name": "wf",
        "nodes": [
            _node("Hook", "n8n-nodes-base.webhook"),
            _node("Agent", "@n8n/n8n-nodes-langchain.agent"),
            _node("Model", "@n8n/n8n-nodes-langchain.lmChatOpenRouter"),
            _node("Calc", "@n8n/n8n-nodes-langchain.toolCalculator"),
        ],
        "connections": {
            "Hook": {"main": [[_edge("Agent")]]},
            "Model": {"main": [[_edge("Agent")]]},
        },
    }
    fixed = auto_fix(wf)
    assert fixed["connections"]["Model"] == {
        "main": [[_edge("Agent")]],
        "ai_languageModel": [[_edge("Agent", "ai_languageModel")]],
    }
    assert fixed["connections"]["Calc"] == {"ai_tool": [[_edge("Agent", "ai_tool")]]}


def test_model_is_wired_to_first_agent():
    wf = {
        "name": "wf",
        "nodes": [
            _node("Hook", "n8n-nodes-base.webhook"),
            _node("A1", "@n8n/n8n-nodes-langchain.agent"),
            _node("A2", "@n8n/n8n-nodes-langchain.agent"),
            _node("M", "@n8n/n8n-nodes-langchain.lmChatOpenRouter"),
            _node("Calc", "@n8n/n8n-nodes-langchain.toolCalculator"),
        ],
        "connections": {
            "Hook": {"main": [[_edge("A1")]]},
            "A1": {"main": [[_edge("A2")]]},
            "M": {"ai_languageModel": [[_edge("A2", "ai_languageModel")]]},
            "Calc": {"ai_tool": [[_edge("A2", "ai_tool")]]},
        },
    }
    fixed = auto_fix(wf)
    assert fixed["connections"]["M"] == {
        "ai_languageModel": [[_edge("A2", "ai_languageModel"), _edge("A1", "ai_languageModel")]],
    }
    assert fixed["connections"]["Calc"] == {"ai_tool": [[_edge("A2", "ai_tool")]]}
    assert validate_connections(fixed).errors == []


def test_layout_modes():
    wf = {
        "name": "wf",
        "nodes": [_node("Hook", "n8n-nodes-base.webhook", position=[900, 40]), _node("A", position=[5])],
        "connections": {"Hook": {"main": [[_edge("A")]]}},
    }
    kept = auto_fix(wf)
    assert kept["nodes"][0]["position"] == [900, 40]
    assert kept["nodes"][1]["position"] == [500, 300]

    reflowed = auto_fix(wf, reflow_positions=True)
    assert [n["position"] for n in reflowed["nodes"]] == [[250, 300], [500, 300]]


def test_never_removes_valid_nodes_or_edges_and_leaves_no_dangling_edges():
    wf = {
        "name": "wf",
        "nodes": [_node("A"), _node("B"), _node("C")],
        "connections": {
            "A": {"main": [[_edge("B"), _edge("Missing")]]},
            "B": {"main": [[_edge("C")]], "ai_tool": [[_edge("A", "ai_tool")]]},
        },
    }
    fixed = auto_fix(wf, intent={"requiredNodeCategories": ["slack"], "aiRequirements": {"needsAI": True}})
    names = {n["name"] for n in fixed["nodes"]}
    assert {"A", "B", "C"} <= names
    edges = set(extract_edges(fixed))
    assert {("A", "B", "main"), ("B", "C", "main"), ("B", "A", "ai_tool")} <= edges
    assert all(dst in names for _src, dst, _channel in edges)


def test_auto_fix_is_stable_on_its_own_output():
    wf = {
        "name": "wf",
        "nodes": [_node("Format"), _node("Mail", "n8n-nodes-base.emailSend", position=[650, 300])],
        "connections": {"Format": {"main": [[_edge("Mail")]]}},
    }
    intent = {"workflowKind": "newsletter", "requiredNodeCategories": ["feed-reader"]}
    once = auto_fix(wf, intent=intent)
    assert auto_fix(once, intent=intent) == once


def test_unique_helpers():
    assert unique_name("Code", {"Code", "Code 1"}) == "Code 2"
    assert unique_id("code", {"code"}) == "code-1"
    assert unique_id("code", set()) == "code"
