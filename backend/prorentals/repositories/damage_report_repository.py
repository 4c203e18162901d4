from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from prorentals.extensions import db
from prorentals.models.damage_report import DamageReport
from prorentals.utils.errors import ConflictError, NotFoundError, StaleVersionError


@dataclass
class ReportFilter:
    rental_id: str | None = None
    status: str | None = None
    created_by: str | None = None


class DamageReportRepository:
    """Persistence for the report aggregate.

    ``save`` is the only way a mutated report reaches the database: it bumps
    ``version`` by one and commits. The ORM adds ``WHERE version = <loaded>``
    to the UPDATE, so a concurrent writer that committed first makes this
    commit fail with StaleVersionError instead of silently overwriting.
    """

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def find(self, report_id: int) -> DamageReport | None:
        return self.session.get(DamageReport, report_id)

    def get(self, report_id: int) -> DamageReport:
        report = self.find(report_id)
        if report is None:
            raise NotFoundError("Damage report not found", payload={"reportId": report_id})
        return report

    def find_in_flight(self, rental_id: str) -> DamageReport | None:
        return (
            self.session.query(DamageReport)
            .filter(DamageReport.in_flight_rental_id == rental_id)
            .first()
        )

    def query_by_filter(self, flt: ReportFilter):
        q = self.session.query(DamageReport)
        if flt.rental_id:
            q = q.filter(DamageReport.rental_id == flt.rental_id)
        if flt.status:
            q = q.filter(DamageReport.status == flt.status)
        if flt.created_by:
            q = q.filter(DamageReport.created_by == flt.created_by)
        return q

    def list_by_filter(self, flt: ReportFilter, page: int = 1, limit: int = 10) -> tuple[list[DamageReport], int]:
        q = self.query_by_filter(flt)
        total = q.count()
        items = (
            q.order_by(DamageReport.created_at.desc(), DamageReport.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def check_version(self, report: DamageReport, expected_version: int | None) -> None:
        if expected_version is not None and int(expected_version) != report.version:
            raise StaleVersionError(
                "The report was modified by someone else. Reload and try again.",
                payload={"reportId": report.id, "currentVersion": report.version},
            )

    def add(self, report: DamageReport) -> DamageReport:
        """Stage a new report (version 1) and flush so it gets an id. Call ``commit`` after."""
        report.version = 1
        self.session.add(report)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            self._raise_in_flight_conflict(report.rental_id, exc)
        return report

    def commit(self, report: DamageReport) -> DamageReport:
        self._commit(report)
        return report

    def save(self, report: DamageReport, expected_version: int | None = None) -> DamageReport:
        self.check_version(report, expected_version)
        report.version = report.version + 1
        report.updated_at = datetime.utcnow()
        self._commit(report)
        return report

    def delete(self, report: DamageReport, expected_version: int | None = None) -> None:
        self.check_version(report, expected_version)
        self.session.delete(report)
        self._commit(report)

    def _commit(self, report: DamageReport) -> None:
        rental_id = report.rental_id
        report_id = report.id
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            raise StaleVersionError(
                "The report was modified by someone else. Reload and try again.",
                payload={"reportId": report_id},
            )
        except IntegrityError as exc:
            self.session.rollback()
            self._raise_in_flight_conflict(rental_id, exc)

    def _raise_in_flight_conflict(self, rental_id: str, exc: IntegrityError) -> None:
        existing = self.find_in_flight(rental_id)
        if existing is None:
            raise exc
        raise ConflictError(
            "A damage report is already in progress for this rental",
            payload={"existingReportId": existing.id, "rentalId": rental_id},
        )
