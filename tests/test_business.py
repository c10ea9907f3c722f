from flowmend.catalog.registry import default_catalog
from flowmend.semantic.business import validate_business_logic


def _node(name, type_, **params):
    return {"id": name, "name": name, "type": type_, "typeVersion": 1, "position": [0, 0], "parameters": params}


def _edge(dst, channel="main"):
    return {"node": dst, "type": channel, "index": 0}


WEBHOOK = "n8n-nodes-base.webhook"
IMAP = "n8n-nodes-base.emailReadImap"
AGGREGATE = "n8n-nodes-base.aggregate"
AGENT = "@n8n/n8n-nodes-langchain.agent"
MODEL = "@n8n/n8n-nodes-langchain.lmChatOpenRouter"
SEND = "n8n-nodes-base.emailSend"
RSS = "n8n-nodes-base.rssFeed"
CODE = "n8n-nodes-base.code"


def test_missing_trigger_names_canonical_entries():
    wf = {"nodes": [_node("Code", CODE)], "connections": {}}
    report = validate_business_logic(wf)
    assert not report.valid
    message = report.errors[0]
    assert "Webhook Trigger" in message
    assert "Schedule Trigger" in message
    assert "IMAP Email Read" in message
    assert report.suggestions[0].startswith("Add a Webhook Trigger")


def test_mail_reader_counts_as_entry():
    wf = {"nodes": [_node("Inbox", IMAP)], "connections": {}}
    assert not any("trigger node" in e for e in validate_business_logic(wf).errors)


def test_required_categories_accept_values_and_types():
    wf = {
        "nodes": [_node("Hook", WEBHOOK), _node("Send", SEND)],
        "connections": {"Hook": {"main": [[_edge("Send")]]}},
    }
    intent = {"requiredNodeCategories": ["email-sender", "n8n-nodes-base.webhook", "slack", "vendor.customThing"]}
    report = validate_business_logic(wf, intent)
    assert report.errors == ["Required node missing: slack", "Required node missing: vendor.customThing"]


def test_unknown_requirement_matches_type_suffix():
    wf = {"nodes": [_node("Hook", WEBHOOK), _node("Custom", "vendor.customThing")],
          "connections": {"Hook": {"main": [[_edge("Custom")]]}}}
    report = validate_business_logic(wf, {"requiredNodes": ["other.customThing"]})
    assert report.valid


def test_mail_workflow_rules():
    wf = {
        "nodes": [_node("Hook", WEBHOOK), _node("Agent", AGENT, text="{{ $json }}")],
        "connections": {"Hook": {"main": [[_edge("Agent")]]}},
    }
    report = validate_business_logic(wf, {"workflowKind": "email-summary"})
    assert "Email workflow must have IMAP Email Read node" in report.errors
    assert "Email workflow with AI Agent must have Aggregate node between IMAP and Agent" in report.errors


def test_aggregate_not_leading_to_agent_warns():
    wf = {
        "nodes": [_node("Inbox", IMAP), _node("Collect", AGGREGATE), _node("Agent", AGENT)],
        "connections": {"Inbox": {"main": [[_edge("Agent"), _edge("Collect")]]}},
    }
    report = validate_business_logic(wf, {"workflowKind": "mail-automation"})
    assert report.valid
    assert 'Aggregate node "Collect" does not lead to AI Agent "Agent"' in report.warnings


def test_digest_rules():
    wf = {
        "nodes": [_node("Hook", WEBHOOK), _node("Collect", AGGREGATE), _node("Agent", AGENT, text="{{ $json.items }}")],
        "connections": {"Hook": {"main": [[_edge("Collect")]]}, "Collect": {"main": [[_edge("Agent")]]}},
    }
    report = validate_business_logic(wf, {"workflowType": "newsletter"})
    assert report.errors == ["Newsletter workflow must have Email Send node"]
    assert "Newsletter workflow should have RSS Feed node to collect articles" in report.warnings
    assert "Newsletter workflow should have Schedule Trigger for automated sending" in report.warnings
    assert any("$json.data.toJsonString()" in w for w in report.warnings)


def test_ai_requirements():
    wf = {"nodes": [_node("Hook", WEBHOOK)], "connections": {}}
    intent = {"aiRequirements": {"needsAI": "yes", "needsTools": True, "needsMemory": 1}}
    report = validate_business_logic(wf, intent)
    assert "AI workflow must have AI Agent node" in report.errors
    assert any("language model" in e for e in report.errors)
    assert "AI Agent should have Calculator Tool for calculations" in report.warnings
    assert "AI Agent should have Buffer Window Memory for context" in report.warnings


def test_isolated_and_unreachable_nodes():
    wf = {
        "nodes": [
            _node("Hook", WEBHOOK), _node("Step", CODE), _node("Orphan", CODE),
            _node("Side", CODE), _node("Tail", CODE), _node("Model", MODEL), _node("Agent", AGENT),
        ],
        "connections": {
            "Hook": {"main": [[_edge("Step")]]},
            "Side": {"main": [[_edge("Tail")]]},
            "Model": {"ai_languageModel": [[_edge("Agent", "ai_languageModel")]]},
        },
    }
    report = validate_business_logic(wf)
    assert report.valid
    assert report.warnings.count('Node "Orphan" is not connected to the workflow') == 1
    assert 'Node "Side" is not reachable from any trigger' in report.warnings
    assert 'Node "Tail" is not reachable from any trigger' in report.warnings
    assert 'Node "Agent" is not reachable from any trigger' in report.warnings
    assert not any('"Model"' in w for w in report.warnings)


def test_missing_connections_skips_connectivity():
    wf = {"nodes": [_node("Hook", WEBHOOK), _node("Step", CODE)]}
    assert validate_business_logic(wf).findings == []


def test_explicit_catalog_is_used():
    catalog = default_catalog().with_overrides({"webhook-trigger": {"type_name": "acme.inbound"}})
    wf = {"nodes": [_node("In", "acme.inbound")], "connections": {"In": {}}}
    assert validate_business_logic(wf, catalog=catalog).valid


def test_non_string_node_names_are_skipped():
    bad = _node("Step", CODE)
    bad["name"] = ["Step"]
    wf = {
        "nodes": [_node("Hook", WEBHOOK), bad],
        "connections": {"Hook": {"main": [[_edge("Step"), {"node": ["Step"], "type": "main"}]]}},
    }
    report = validate_business_logic(wf)
    assert report.warnings == []
    assert report.valid
