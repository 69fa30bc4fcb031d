from dataclasses import dataclass

from marketplace.models import AdminStats
from marketplace.services.actors import ActorContext, require_admin
from marketplace.services.database import Database, database


@dataclass
class AdminDashboard:
    db: Database

    def stats(self, actor: ActorContext) -> AdminStats:
        require_admin(actor)
        with self.db.read() as conn:
            row = conn.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM providers) AS total_providers,
                    (SELECT COUNT(*) FROM providers WHERE is_approved = 0) AS pending_approvals,
                    (SELECT COUNT(*) FROM providers WHERE is_suspended = 1) AS suspended_providers,
                    (SELECT COUNT(*) FROM services) AS total_services,
                    (SELECT COUNT(*) FROM service_requests) AS total_bookings,
                    (SELECT COUNT(*) FROM service_requests WHERE status = 'requested') AS pending_bookings,
                    (SELECT COUNT(*) FROM reviews WHERE is_visible = 1) AS total_reviews,
                    (SELECT COUNT(*) FROM disputes WHERE status IN ('pending', 'under_review')) AS open_disputes
                """
            ).fetchone()
        return AdminStats(**{key: int(row[key]) for key in row.keys()})


admin_dashboard = AdminDashboard(db=database)
