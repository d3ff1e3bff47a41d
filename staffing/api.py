"""FastAPI driver for the staffing rules engine.

One process serves one user: the app holds a single StaffingSession with the
live RuleSet and the active draft. Rule edits stay in memory until
``POST /api/v1/rules/apply`` stores them.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from staffing.advisory import AdvisoryBridge, build_advisory
from staffing.database import (
    AssignmentStore,
    Base,
    DirectoryBase,
    DirectorySessionLocal,
    RuleSetStore,
    SessionLocal,
    SqlDirectory,
    delete_assignment,
    list_assignments,
    update_assignment,
)
from staffing.errors import EngineError, NotFoundError, Outcome
from staffing.session import StaffingSession
from staffing.validation import candidate_from_payload, validate, validation_report


def _outcome_response(outcome: Outcome, content: Dict[str, Any]) -> JSONResponse:
    if not outcome.ok:
        status_code = 409 if outcome.error is EngineError.INVALID_STEP_ORDER else 400
        raise HTTPException(status_code=status_code, detail=outcome.to_dict())
    return JSONResponse(content=jsonable_encoder(content))


def create_app(
    session_factory=None,
    directory_session_factory=None,
    advisory: Optional[AdvisoryBridge] = None,
) -> FastAPI:
    session_factory = session_factory or SessionLocal
    directory_session_factory = directory_session_factory or DirectorySessionLocal

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Base.metadata.create_all(session_factory.kw["bind"])
        DirectoryBase.metadata.create_all(directory_session_factory.kw["bind"])
        directory = SqlDirectory(directory_session_factory)
        store = RuleSetStore(session_factory)
        app.state.rule_store = store
        app.state.directory = directory
        app.state.staffing = StaffingSession(
            store.load(),
            directory=directory,
            advisory=advisory or build_advisory(),
            sink=AssignmentStore(session_factory, directory=directory),
        )
        yield
        app.state.staffing.close()

    app = FastAPI(title="Staffing Rules API", version="0.1", lifespan=lifespan)

    def get_staffing(request: Request) -> StaffingSession:
        return request.app.state.staffing

    def get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def _rules_payload(staffing: StaffingSession) -> Dict[str, Any]:
        return {"rules": staffing.rule_set.to_document(), "summary": staffing.rule_set.summary()}

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    # -- rules ------------------------------------------------------------

    @app.get("/api/v1/rules")
    def get_rules(staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        return JSONResponse(content=jsonable_encoder(_rules_payload(staffing)))

    @app.put("/api/v1/rules/window")
    def set_window(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.rule_set.set_business_window(payload.get("start"), payload.get("end"))
        return _outcome_response(outcome, _rules_payload(staffing))

    @app.put("/api/v1/rules/days")
    def set_days(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.rule_set.set_business_days(payload.get("days") or [])
        return _outcome_response(outcome, _rules_payload(staffing))

    @app.post("/api/v1/rules/days/{day}/toggle")
    def toggle_day(day: int, staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.rule_set.toggle_business_day(day)
        return _outcome_response(outcome, _rules_payload(staffing))

    @app.put("/api/v1/rules/duration")
    def set_duration(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.rule_set.set_duration_bounds(payload.get("min_hours"), payload.get("max_hours"))
        return _outcome_response(outcome, _rules_payload(staffing))

    @app.put("/api/v1/rules/min-staff")
    def set_min_staff(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.rule_set.set_min_staff_per_group(payload.get("value"))
        return _outcome_response(outcome, _rules_payload(staffing))

    @app.post("/api/v1/rules/apply")
    def apply_rules(
        request: Request,
        payload: Optional[Dict[str, Any]] = None,
        staffing: StaffingSession = Depends(get_staffing),
    ) -> JSONResponse:
        actor = str((payload or {}).get("actor") or "api").strip() or "api"
        document = staffing.apply(request.app.state.rule_store, edited_by=actor)
        return JSONResponse(
            content=jsonable_encoder(
                {
                    "id": document.id,
                    "name": document.name,
                    "lastEditedBy": document.lastEditedBy,
                    "lastEditedAt": document.lastEditedAt.isoformat() if document.lastEditedAt else None,
                }
            )
        )

    @app.post("/api/v1/rules/reload")
    def reload_rules(request: Request, staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        staffing.replace_rules(request.app.state.rule_store.load())
        return JSONResponse(content=jsonable_encoder(_rules_payload(staffing)))

    # -- groups -----------------------------------------------------------

    @app.get("/api/v1/groups")
    def get_groups(staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        groups = {name: sorted(staffing.groups.members(name)) for name in staffing.groups.names()}
        return JSONResponse(content=jsonable_encoder({"groups": groups}))

    @app.post("/api/v1/groups")
    def create_group(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        name = payload.get("name") or ""
        outcome = staffing.groups.create(name)
        return _outcome_response(outcome, {"name": name, "members": []})

    @app.delete("/api/v1/groups/{name}")
    def delete_group(name: str, staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.groups.delete(name)
        return _outcome_response(outcome, {"deleted": name})

    @app.post("/api/v1/groups/{name}/members/{institution_id}/toggle")
    def toggle_group_member(
        name: str, institution_id: str, staffing: StaffingSession = Depends(get_staffing)
    ) -> JSONResponse:
        outcome = staffing.groups.toggle_member(name, institution_id)
        return _outcome_response(outcome, {"name": name, "members": sorted(staffing.groups.members(name))})

    # -- restrictions -----------------------------------------------------

    def _restriction_payload(staffing: StaffingSession, physician_id: str) -> Dict[str, Any]:
        return {
            "physician_id": physician_id,
            "restricted": sorted(staffing.restrictions.restricted_for(physician_id)),
            "groups": {
                name: staffing.restrictions.is_group_restricted(physician_id, name)
                for name in staffing.groups.names()
            },
        }

    @app.get("/api/v1/physicians/{physician_id}/restrictions")
    def get_restrictions(physician_id: str, staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        return JSONResponse(content=jsonable_encoder(_restriction_payload(staffing, physician_id)))

    @app.post("/api/v1/physicians/{physician_id}/restrictions/{institution_id}/toggle")
    def toggle_restriction(
        physician_id: str, institution_id: str, staffing: StaffingSession = Depends(get_staffing)
    ) -> JSONResponse:
        outcome = staffing.restrictions.toggle(physician_id, institution_id)
        return _outcome_response(outcome, _restriction_payload(staffing, physician_id))

    @app.post("/api/v1/physicians/{physician_id}/restrictions/groups/{group_name}/toggle")
    def toggle_group_restriction(
        physician_id: str, group_name: str, staffing: StaffingSession = Depends(get_staffing)
    ) -> JSONResponse:
        outcome = staffing.restrictions.toggle_group(physician_id, group_name)
        return _outcome_response(outcome, _restriction_payload(staffing, physician_id))

    @app.post("/api/v1/physicians/{physician_id}/restrictions/all")
    def restrict_all(
        request: Request, physician_id: str, staffing: StaffingSession = Depends(get_staffing)
    ) -> JSONResponse:
        institution_ids = [record.id for record in request.app.state.directory.list_institutions()]
        outcome = staffing.restrictions.restrict_all(physician_id, institution_ids)
        return _outcome_response(outcome, _restriction_payload(staffing, physician_id))

    @app.delete("/api/v1/physicians/{physician_id}/restrictions")
    def clear_restrictions(physician_id: str, staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.restrictions.clear_all(physician_id)
        return _outcome_response(outcome, _restriction_payload(staffing, physician_id))

    # -- draft ------------------------------------------------------------

    @app.get("/api/v1/draft")
    def get_draft(staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        return JSONResponse(content=jsonable_encoder(staffing.state()))

    @app.post("/api/v1/draft/physician")
    def draft_physician(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.select_physician(payload.get("physician_id"))
        return _outcome_response(outcome, staffing.state())

    @app.post("/api/v1/draft/institution")
    def draft_institution(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.select_institution(payload.get("institution_id"))
        return _outcome_response(outcome, staffing.state())

    @app.post("/api/v1/draft/date")
    def draft_date(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.select_date(payload.get("date"))
        return _outcome_response(outcome, staffing.state())

    @app.post("/api/v1/draft/time")
    def draft_time(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.select_time(payload.get("start"), payload.get("end"))
        return _outcome_response(outcome, staffing.state())

    @app.post("/api/v1/draft/group")
    def draft_group(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.select_group_tag(payload.get("tag", ""))
        return _outcome_response(outcome, staffing.state())

    @app.post("/api/v1/draft/confirm")
    def draft_confirm(staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        result = staffing.confirm()
        content = {
            "committed": result.committed,
            "assignment": result.assignment.to_dict() if result.assignment else None,
            "report": validation_report(result.violations),
            "state": staffing.state(),
        }
        return _outcome_response(result.outcome, content)

    @app.post("/api/v1/draft/reset")
    def draft_reset(staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        outcome = staffing.reset()
        return _outcome_response(outcome, staffing.state())

    @app.get("/api/v1/conversation")
    def conversation(staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        return JSONResponse(content=jsonable_encoder({"messages": staffing.messages()}))

    # -- validation & assignments -------------------------------------------

    @app.post("/api/v1/validate")
    def validate_candidate(payload: Dict[str, Any], staffing: StaffingSession = Depends(get_staffing)) -> JSONResponse:
        candidate = candidate_from_payload(payload)
        if candidate is None:
            raise HTTPException(
                status_code=400,
                detail="physician_id, institution_id, date (YYYY-MM-DD), start_time and end_time (HH:MM) are required",
            )
        report = validation_report(validate(staffing.rule_set, candidate))
        return JSONResponse(content=jsonable_encoder(report))

    @app.get("/api/v1/assignments")
    def get_assignments(
        physician_id: Optional[str] = Query(default=None),
        institution_id: Optional[str] = Query(default=None),
        db=Depends(get_db),
    ) -> JSONResponse:
        rows = list_assignments(db, physician_id=physician_id, institution_id=institution_id)
        return JSONResponse(content=jsonable_encoder({"assignments": [row.to_dict() for row in rows]}))

    @app.patch("/api/v1/assignments/{assignment_id}")
    def patch_assignment(assignment_id: int, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
        try:
            row = update_assignment(db, assignment_id, status=payload.get("status"), notes=payload.get("notes"))
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return JSONResponse(content=jsonable_encoder(row.to_dict()))

    @app.delete("/api/v1/assignments/{assignment_id}")
    def remove_assignment(assignment_id: int, db=Depends(get_db)) -> JSONResponse:
        try:
            delete_assignment(db, assignment_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return JSONResponse(content={"deleted": assignment_id})

    return app


app = create_app()
