# tests/test_snapshot.py
import json

from schemas.assembly import LogEntry, LogType, ProjectSnapshot
from schemas.cost import ApiCallSummary, estimate_cost
from schemas.shot import ExtensionUnit, IngredientImage, ProjectAsset, Shot, ShotStatus, StandardUnit


def test_snapshot_round_trip_keeps_shots_identical():
    costs = ApiCallSummary()
    costs.record("image")
    costs.record("pro", 1200, 800)
    snapshot = ProjectSnapshot(
        project_name="Harbor Story",
        shot_book=[
            Shot.model_validate({"id": "s1_01", "status": "NEEDS_REVIEW", "pitch": "x", "selectedAssetIds": ["a1"]}),
            Shot(id="s1_02", ad_hoc_assets=[IngredientImage(base64="eA==", name="ref")], is_approved=True),
        ],
        assets=[ProjectAsset(id="a1", name="Mara", type="character")],
        log_entries=[LogEntry(message="saved", type=LogType.SUCCESS)],
        api_call_summary=costs,
        app_version="5.0",
    )

    doc = json.loads(json.dumps(snapshot.to_document()))
    restored = ProjectSnapshot.model_validate(doc)

    assert restored.shot_book == snapshot.shot_book
    first = restored.shot_book[0]
    assert (first.id, first.status, first.pitch, first.selected_asset_ids) == (
        "s1_01", ShotStatus.NEEDS_REVIEW, "x", ["a1"],
    )
    assert restored.assets == snapshot.assets
    assert restored.api_call_summary == costs
    assert restored.log_entries[0].type == LogType.SUCCESS


def test_document_uses_camel_case_keys():
    doc = ProjectSnapshot(shot_book=[Shot(id="s1_01", keyframe_prompt_text="p")]).to_document()
    shot = doc["shotBook"][0]
    assert shot["keyframePromptText"] == "p"
    assert shot["isApproved"] is False
    assert "veoJson" not in shot
    assert "apiCallSummary" in doc and "proTokens" in doc["apiCallSummary"]


def test_legacy_extension_kind_is_derived_from_veo_json():
    legacy = {
        "id": "s1_01_ext1",
        "status": "NEEDS_REVIEW",
        "pitch": "keep going",
        "veoJson": {"unit_type": "extend", "directorNotes": "keep going", "veo_shot": {"shot_id": "s1_01_ext1"}},
    }
    shot = Shot.model_validate(legacy)
    assert isinstance(shot.kind, ExtensionUnit)
    assert shot.kind.directive == "keep going"
    assert shot.is_extension

    plain = Shot.model_validate({"id": "s1_01", "veoJson": {"unit_type": "shot", "veo_shot": {}}})
    assert isinstance(plain.kind, StandardUnit)


def test_unknown_veo_fields_survive_round_trip():
    raw = {"id": "s1_01", "veoJson": {"unit_type": "shot", "veo_shot": {"shot_id": "s1_01", "custom": {"lens": "35mm"}}}}
    doc = ProjectSnapshot(shot_book=[Shot.model_validate(raw)]).to_document()
    assert doc["shotBook"][0]["veoJson"]["veo_shot"]["custom"] == {"lens": "35mm"}


def test_selected_assets_are_deduplicated():
    assert Shot(id="s1_01", selected_asset_ids=["a1", "a2", "a1"]).selected_asset_ids == ["a1", "a2"]


def test_cost_estimate():
    costs = ApiCallSummary()
    for _ in range(2):
        costs.record("image")
    costs.record("flash", 1_000_000, 1_000_000)
    costs.record("pro", 1_000_000, 0)
    costs.record("video")
    costs.record(None)
    assert (costs.pro, costs.flash, costs.image) == (1, 1, 2)
    assert estimate_cost(costs) == round(0.06 + 0.075 + 0.30 + 3.50, 6)
