import os
import secrets
import time
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app
from werkzeug.utils import secure_filename

from prorentals.extensions import db
from prorentals.models.damage import Damage
from prorentals.models.damage_photo import DamagePhoto
from prorentals.utils.errors import NotFoundError, ValidationError

URL_PREFIX = "/uploads/damages/"


def _upload_root() -> str:
    root = current_app.config.get("UPLOADS_DAMAGES_DIR")
    if not root:
        root = os.path.join(current_app.config["UPLOADS_DIR"], "damages")
    return root


def _file_size(storage) -> int:
    stream = storage.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def photo_to_dict(photo: DamagePhoto) -> Dict[str, Any]:
    return {
        "id": photo.id,
        "damageId": photo.damage_id,
        "rentalId": photo.rental_id,
        "url": photo.url,
        "originalName": photo.original_name,
        "contentType": photo.content_type,
        "sizeBytes": photo.size_bytes,
        "uploadedBy": photo.uploaded_by,
        "uploadedAt": photo.uploaded_at.isoformat() if photo.uploaded_at else None,
    }


def validate_batch(files: list, damage: Optional[Damage] = None) -> None:
    """Checks the whole batch up front. Any violation rejects every file."""
    max_files = int(current_app.config.get("DAMAGE_PHOTO_MAX_FILES", 5))
    max_bytes = int(current_app.config.get("DAMAGE_PHOTO_MAX_BYTES", 5 * 1024 * 1024))
    allowed = set(current_app.config.get("DAMAGE_PHOTO_ALLOWED_TYPES") or ())

    if not files:
        raise ValidationError("Send at least one photo", errors={"photos": ["No files received"]})
    if len(files) > max_files:
        raise ValidationError(
            f"At most {max_files} photos per upload",
            errors={"photos": [f"Received {len(files)} files"]},
        )
    if damage is not None:
        existing = len(damage.photos or [])
        if existing + len(files) > max_files:
            raise ValidationError(
                f"A damage can have at most {max_files} photos",
                errors={"photos": [f"Damage already has {existing} photos"]},
            )

    problems = []
    for storage in files:
        name = storage.filename or ""
        errors = []
        if (storage.mimetype or "").lower() not in allowed:
            errors.append(f"Unsupported type {storage.mimetype or 'unknown'}")
        size = _file_size(storage)
        if size > max_bytes:
            errors.append(f"File is larger than {max_bytes // (1024 * 1024)}MB")
        if size == 0:
            errors.append("File is empty")
        if errors:
            problems.append({"file": name, "errors": errors})

    if problems:
        raise ValidationError("Some photos are invalid", errors={"files": problems})


def _write_file(storage, path: str) -> None:
    storage.save(path)


def save_photos(
    files: list,
    base_url: str,
    rental_id: Optional[str] = None,
    damage_id: Optional[int] = None,
    uploaded_by: Optional[str] = None,
) -> Tuple[Dict[str, Any], int]:
    damage = None
    if damage_id is not None:
        damage = db.session.get(Damage, damage_id)
        if damage is None:
            raise NotFoundError("Damage not found", payload={"damageId": damage_id})
        rental_id = rental_id or damage.rental_id

    validate_batch(files, damage)

    folder = secure_filename(rental_id) if rental_id else "temp"
    folder = folder or "temp"
    target_dir = os.path.join(_upload_root(), folder)
    os.makedirs(target_dir, exist_ok=True)
    base = (base_url or "http://127.0.0.1:5000/").rstrip("/")

    saved: List[DamagePhoto] = []
    failed = []
    for storage in files:
        original = storage.filename or ""
        filename = f"{int(time.time() * 1000)}_{secrets.token_hex(6)}_{secure_filename(original) or 'photo'}"
        path = os.path.join(target_dir, filename)
        try:
            size = _file_size(storage)
            _write_file(storage, path)
        except OSError as exc:
            current_app.logger.warning("[photos] save failed file=%s: %s", original, exc)
            failed.append({"file": original, "error": str(exc)})
            continue

        photo = DamagePhoto(
            damage_id=damage.id if damage is not None else None,
            rental_id=rental_id,
            url=f"{base}{URL_PREFIX}{folder}/{filename}",
            stored_path=path,
            original_name=original,
            content_type=(storage.mimetype or "").lower(),
            size_bytes=size,
            uploaded_by=uploaded_by,
        )
        db.session.add(photo)
        saved.append(photo)

    if damage is not None and saved:
        damage.photos = list(damage.photos or []) + [p.url for p in saved]
    db.session.commit()

    if saved and failed:
        status = 207
    elif saved:
        status = 200
    else:
        status = 500

    current_app.logger.info(
        "[photos] upload rental=%s damage=%s saved=%s failed=%s", rental_id, damage_id, len(saved), len(failed)
    )
    return {
        "uploaded": [photo_to_dict(p) for p in saved],
        "urls": [p.url for p in saved],
        "failed": failed,
        "totalUploaded": len(saved),
        "totalFailed": len(failed),
    }, status


def list_photos(damage_id: Optional[int] = None, rental_id: Optional[str] = None) -> List[Dict[str, Any]]:
    query = DamagePhoto.query
    if damage_id is not None:
        query = query.filter(DamagePhoto.damage_id == damage_id)
    if rental_id:
        query = query.filter(DamagePhoto.rental_id == rental_id)
    return [photo_to_dict(p) for p in query.order_by(DamagePhoto.uploaded_at.asc(), DamagePhoto.id.asc()).all()]


def _remove_file(path: Optional[str]) -> None:
    if not path:
        return
    try:
        if os.path.isfile(path):
            os.remove(path)
    except OSError as exc:
        current_app.logger.warning("[photos] could not remove %s: %s", path, exc)


def delete_photo(photo_url: Optional[str], damage_id: Optional[int]) -> None:
    if not photo_url or damage_id is None:
        raise ValidationError(
            "photoUrl and damageId are required",
            errors={k: ["Missing data for required field."] for k, v in (("photoUrl", photo_url), ("damageId", damage_id)) if not v},
        )

    photo = DamagePhoto.query.filter_by(url=photo_url).first()
    if photo is None:
        raise NotFoundError("Photo not found", payload={"photoUrl": photo_url})

    if photo.damage_id is not None and photo.damage_id != damage_id:
        raise NotFoundError("Photo not found on this damage", payload={"photoUrl": photo_url, "damageId": damage_id})

    damage = db.session.get(Damage, damage_id)
    if damage is not None and photo_url in (damage.photos or []):
        damage.photos = [u for u in damage.photos if u != photo_url]

    stored_path = photo.stored_path
    db.session.delete(photo)
    db.session.commit()
    _remove_file(stored_path)
    current_app.logger.info("[photos] deleted url=%s damage=%s", photo_url, damage_id)


def remove_damage_photos(damage: Damage) -> int:
    """Drops files and photo rows of a damage. The caller commits."""
    photos = DamagePhoto.query.filter(
        (DamagePhoto.damage_id == damage.id) | (DamagePhoto.url.in_(list(damage.photos or [])))
    ).all()
    for photo in photos:
        _remove_file(photo.stored_path)
        db.session.delete(photo)
    return len(photos)
