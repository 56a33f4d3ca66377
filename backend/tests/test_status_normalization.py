import unittest
from decimal import Decimal

from erp import create_app
from erp.config import TestConfig
from erp.extensions import db
from erp.models import ProductionOrder
from erp.services.production_service import normalize_persisted_statuses
from erp.time_utils import utcnow


class StatusNormalizationTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(TestConfig)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(ProductionOrder).delete()
        db.session.commit()

        for index, status in enumerate(["in-progress", "in progress", "in_progress", "planned"], start=1):
            db.session.add(
                ProductionOrder(
                    bom_id=1,
                    quantity_to_produce=Decimal("1"),
                    status=status,
                    start_date=utcnow(),
                    batch_id=f"BATCH-00000{index}",
                )
            )
        db.session.commit()

    def _statuses(self):
        rows = db.session.query(ProductionOrder).order_by(ProductionOrder.id).all()
        return [row.status for row in rows]

    def test_dry_run_reports_without_writing(self):
        self.assertEqual(normalize_persisted_statuses(dry_run=True), 2)
        self.assertEqual(self._statuses(), ["in-progress", "in progress", "in_progress", "planned"])

    def test_rewrites_legacy_spellings(self):
        self.assertEqual(normalize_persisted_statuses(), 2)
        self.assertEqual(self._statuses(), ["in_progress", "in_progress", "in_progress", "planned"])

    def test_second_run_is_a_no_op(self):
        normalize_persisted_statuses()
        self.assertEqual(normalize_persisted_statuses(), 0)

    def test_cli_dry_run(self):
        runner = self.app.test_cli_runner()
        result = runner.invoke(args=["erp", "normalize-statuses", "--dry-run"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("DRY RUN 2", result.output)
        self.assertEqual(self._statuses()[0], "in-progress")

    def test_cli_normalizes(self):
        runner = self.app.test_cli_runner()
        result = runner.invoke(args=["erp", "normalize-statuses"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("PASS Normalized 2", result.output)
        self.assertNotIn("in-progress", self._statuses())


if __name__ == "__main__":
    unittest.main()
