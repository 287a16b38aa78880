"""
AgencyFlow Project Management Platform
Project Blueprint: lifecycle and file endpoints.

Thin adapter over ``project_service``: builds the requester from the
gateway headers, passes the JSON body through, and maps service exceptions
to HTTP statuses. File bodies are handled by the storage layer upstream;
these endpoints receive file metadata only.

Endpoints:
    POST    /api/v1/projects                          create
    GET     /api/v1/projects                          role-scoped list
    GET     /api/v1/projects/<pid>                    role-scoped detail
    PUT     /api/v1/projects/<pid>                    partial update
    DELETE  /api/v1/projects/<pid>                    delete
    GET     /api/v1/projects/<pid>/progress           progress snapshot
    POST    /api/v1/projects/<pid>/progress           progress/status update
    GET     /api/v1/projects/<pid>/files              list files
    POST    /api/v1/projects/<pid>/files              record uploaded file
    POST    /api/v1/projects/<pid>/requirement        record PDF requirement document
    PUT     /api/v1/projects/<pid>/requirements-pdf   point project at a requirement document
    DELETE  /api/v1/projects/files/<fid>              delete file record
"""

from flask import Blueprint, jsonify, request

from agencyflow.blueprints import requester_required
from agencyflow.services import project_service
from agencyflow.utils.errors import E, api_error, register_service_error_handlers

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1/projects")
register_service_error_handlers(project_bp)


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("", methods=["POST"])
def create_project():
    requester, err = requester_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    project = project_service.create_project(data, requester)
    return jsonify(project.to_dict()), 201


@project_bp.route("", methods=["GET"])
def list_projects():
    requester, err = requester_required()
    if err:
        return err
    projects = project_service.list_projects(requester)
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)})


@project_bp.route("/<int:pid>", methods=["GET"])
def get_project(pid):
    requester, err = requester_required()
    if err:
        return err
    return jsonify(project_service.get_project(pid, requester).to_dict())


@project_bp.route("/<int:pid>", methods=["PUT", "PATCH"])
def update_project(pid):
    """Partial update. Null values are treated as "not provided"."""
    requester, err = requester_required()
    if err:
        return err
    patch = request.get_json(silent=True) or {}
    project = project_service.update_project(pid, patch, requester)
    return jsonify(project.to_dict())


@project_bp.route("/<int:pid>", methods=["DELETE"])
def delete_project(pid):
    requester, err = requester_required()
    if err:
        return err
    result = project_service.delete_project(pid, requester)
    return jsonify(result)


@project_bp.route("/<int:pid>/progress", methods=["GET"])
def get_progress(pid):
    requester, err = requester_required()
    if err:
        return err
    # Scope check first; the snapshot itself is unscoped.
    project_service.get_project(pid, requester)
    progress = project_service.get_project_progress(pid)
    if progress is None:
        return api_error(E.NOT_FOUND, "Project not found")
    return jsonify(progress)


@project_bp.route("/<int:pid>/progress", methods=["POST"])
def add_progress(pid):
    requester, err = requester_required()
    if err:
        return err
    patch = request.get_json(silent=True) or {}
    project = project_service.add_progress(pid, patch, requester)
    return jsonify(project.to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Files
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/<int:pid>/files", methods=["GET"])
def list_files(pid):
    requester, err = requester_required()
    if err:
        return err
    files = project_service.list_project_files(pid, requester)
    return jsonify({"items": [f.to_dict() for f in files], "total": len(files)})


@project_bp.route("/<int:pid>/files", methods=["POST"])
def upload_file(pid):
    """Body: {original_name, filename?, path?, mimetype?, size?}"""
    requester, err = requester_required()
    if err:
        return err
    file_meta = request.get_json(silent=True)
    return jsonify(project_service.upload_project_file(pid, file_meta, requester)), 201


@project_bp.route("/<int:pid>/requirement", methods=["POST"])
def upload_requirement(pid):
    requester, err = requester_required()
    if err:
        return err
    file_meta = request.get_json(silent=True)
    return jsonify(project_service.upload_requirement(pid, file_meta, requester)), 201


@project_bp.route("/<int:pid>/requirements-pdf", methods=["PUT"])
def update_requirement_pdf(pid):
    requester, err = requester_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    project = project_service.update_requirement_pdf(pid, data.get("path"), requester)
    return jsonify(project.to_dict())


@project_bp.route("/files/<int:fid>", methods=["DELETE"])
def delete_file(fid):
    requester, err = requester_required()
    if err:
        return err
    result = project_service.delete_project_file(fid, requester)
    return jsonify(result)
