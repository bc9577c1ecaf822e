"""kintree REST API.

FastAPI application over the SQLite store: member CRUD and search, relation
masters, relationship edges with mirroring, per-member family views and the
positioned family tree.
"""

import logging
import sqlite3
from datetime import date
from typing import Iterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

import database
import relations
from config import Settings, get_settings
from errors import InvalidRequest, NotFound
from family import load_family
from graph import layout_tree, build_graph, tree_data
from ordering import list_members
from placement import Direction, LayoutOptions, get_placer
from validation import validate_tree

logger = logging.getLogger("kintree.api")


# Request models

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MemberIn(CamelModel):
    """Member fields accepted on create and update."""
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    dob: str | None = None
    gender: str | None = None
    contact_number: str | None = None
    address: str | None = None
    native_place: str | None = None
    notes: str | None = None
    image_url: str | None = None

    @field_validator("dob")
    @classmethod
    def iso_date(cls, value: str | None) -> str | None:
        if not value:
            return None
        return date.fromisoformat(value[:10]).isoformat()


class RelationshipIn(CamelModel):
    from_member_id: int
    to_member_id: int
    relation_code: str


class RelationMasterIn(CamelModel):
    code: str
    label: str
    is_spousal: bool = False
    is_parental: bool = False
    is_bidirectional: bool = False
    inverse_code: str | None = None


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application; the database schema is created if missing."""
    settings = settings or get_settings()
    placer = get_placer(settings.layout_engine)
    database.create_database(settings.database_path).close()

    app = FastAPI(
        title="kintree",
        description="Family tree records, relationship inference and tree layout",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.placer = placer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound):
        logger.info("Not found: %s", exc)
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidRequest)
    async def invalid_request(request: Request, exc: InvalidRequest):
        logger.warning("Invalid request: %s", exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    _register_routes(app)
    return app


def get_conn(request: Request) -> Iterator[sqlite3.Connection]:
    """One connection per request."""
    conn = database.connect(request.app.state.settings.database_path)
    try:
        yield conn
    finally:
        conn.close()


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health_check():
        return {"status": "healthy"}

    # Members

    @app.get("/members")
    def get_members(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=500),
        search: str | None = None,
        conn: sqlite3.Connection = Depends(get_conn),
    ):
        return list_members(conn, page=page, limit=limit, search=search).to_dict()

    @app.get("/members/{member_id}")
    def get_member(member_id: int, conn: sqlite3.Connection = Depends(get_conn)):
        return database.get_member(conn, member_id).to_dict()

    @app.get("/members/{member_id}/family")
    def get_family(member_id: int, conn: sqlite3.Connection = Depends(get_conn)):
        return load_family(conn, member_id).to_dict()

    @app.post("/members", status_code=201)
    def create_member(body: MemberIn, conn: sqlite3.Connection = Depends(get_conn)):
        member = database.create_member(conn, **body.model_dump())
        logger.info("Created member %s (%s)", member.id, member.full_name)
        return member.to_dict()

    @app.put("/members/{member_id}")
    def update_member(
        member_id: int, body: MemberIn, conn: sqlite3.Connection = Depends(get_conn)
    ):
        return database.update_member(conn, member_id, **body.model_dump()).to_dict()

    @app.delete("/members/{member_id}")
    def delete_member(member_id: int, conn: sqlite3.Connection = Depends(get_conn)):
        database.delete_member(conn, member_id)
        logger.info("Deleted member %s", member_id)
        return {"message": "Member deleted"}

    # Relation masters

    @app.get("/relations/masters")
    def get_relation_masters(conn: sqlite3.Connection = Depends(get_conn)):
        return [m.to_dict() for m in database.list_relation_masters(conn)]

    @app.post("/relations/masters", status_code=201)
    def create_relation_master(
        body: RelationMasterIn, conn: sqlite3.Connection = Depends(get_conn)
    ):
        return relations.create_relation_master(conn, **body.model_dump()).to_dict()

    @app.put("/relations/masters/{master_id}")
    def update_relation_master(
        master_id: int, body: RelationMasterIn, conn: sqlite3.Connection = Depends(get_conn)
    ):
        return relations.update_relation_master(conn, master_id, **body.model_dump()).to_dict()

    @app.delete("/relations/masters/{master_id}")
    def delete_relation_master(master_id: int, conn: sqlite3.Connection = Depends(get_conn)):
        relations.delete_relation_master(conn, master_id)
        return {"message": "Relation Master deleted"}

    # Relationship edges

    @app.get("/relations")
    def get_relationships(
        member_id: int | None = Query(default=None, alias="memberId"),
        conn: sqlite3.Connection = Depends(get_conn),
    ):
        if member_id is None:
            raise HTTPException(status_code=400, detail="memberId is required")
        return relations.list_relationships(conn, member_id)

    @app.post("/relations", status_code=201)
    def create_relationship(body: RelationshipIn, conn: sqlite3.Connection = Depends(get_conn)):
        edge = relations.create_relationship(
            conn, body.from_member_id, body.to_member_id, body.relation_code
        )
        return edge.to_dict()

    @app.delete("/relations/{edge_id}")
    def delete_relationship(edge_id: int, conn: sqlite3.Connection = Depends(get_conn)):
        relations.delete_relationship(conn, edge_id)
        return {"message": "Relationship deleted"}

    # Tree

    @app.get("/tree")
    def get_tree(conn: sqlite3.Connection = Depends(get_conn)):
        return tree_data(conn)

    @app.get("/tree/layout")
    def get_tree_layout(
        request: Request,
        direction: Direction = Direction.TOP_TO_BOTTOM,
        conn: sqlite3.Connection = Depends(get_conn),
    ):
        settings: Settings = request.app.state.settings
        options = LayoutOptions(
            node_width=settings.node_width,
            node_height=settings.node_height,
            rank_sep=settings.rank_sep,
            node_sep=settings.node_sep,
        )
        return layout_tree(conn, direction, options, request.app.state.placer)

    @app.get("/tree/validate")
    def get_tree_warnings(conn: sqlite3.Connection = Depends(get_conn)):
        warnings = validate_tree(build_graph(conn))
        return {"warnings": warnings, "relationMasters": relations.check_relation_masters(conn)}

    @app.get("/dashboard")
    def get_dashboard(conn: sqlite3.Connection = Depends(get_conn)):
        return database.dashboard_stats(conn)
