import unittest
from datetime import datetime

from rental_vouchers.core.exceptions import VoucherInputError
from rental_vouchers.models.voucher import DiscountType
from rental_vouchers.services.eligibility import validate_voucher
from rental_vouchers.services.stacking import find_best_combination, validate_stack

from voucher_factories import add_car, add_voucher, make_session_factory


NOW = datetime(2025, 1, 1, 9, 0)


class StackingTestCase(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()

    def tearDown(self):
        self.db.close()


class TestValidateStack(StackingTestCase):
    def test_two_fixed_vouchers(self):
        add_voucher(self.db, "TEN", DiscountType.FIXED_AMOUNT, 10, is_stackable=True)
        add_voucher(self.db, "FIFTEEN", DiscountType.FIXED_AMOUNT, 15, is_stackable=True)

        verdict = validate_stack(self.db, ["TEN", "FIFTEEN"], 200, now=NOW)
        self.assertTrue(verdict.valid)
        response = verdict.to_response()
        self.assertEqual(response["total_savings"], 25.0)
        self.assertEqual(response["final_amount"], 175.0)
        self.assertEqual([p["code"] for p in response["promo_breakdown"]], ["TEN", "FIFTEEN"])

    def test_morning_promo_with_rent_5_get_1(self):
        add_voucher(self.db, "MORNING", DiscountType.HOURLY_PRICE_REDUCTION, 3, is_stackable=True)
        add_voucher(
            self.db,
            "RENT5",
            DiscountType.DURATION_BASED_FREE_HOURS,
            1,
            is_stackable=True,
            free_hours_ratio={"rent": 5, "free": 1},
            minimum_rental_hours=6,
            deduct_cheapest_hours=True,
        )
        car = add_car(self.db, hourly_price=8)

        verdict = validate_stack(
            self.db,
            ["MORNING", "RENT5"],
            144,
            car_id=car.id,
            start=datetime(2025, 1, 1, 9),
            end=datetime(2025, 1, 2, 3),
            now=NOW,
        )
        self.assertTrue(verdict.valid, verdict.message)
        response = verdict.to_response()
        self.assertEqual(response["total_savings"], 30.0)
        self.assertEqual(response["final_amount"], 114.0)
        self.assertEqual(
            [(p["promo_name"], p["savings"]) for p in response["promo_breakdown"]],
            [("Morning Bookings Promo", 15.0), ("Rent 5 Get 1", 15.0)],
        )

    def test_later_vouchers_apply_to_what_is_left(self):
        add_voucher(self.db, "HALF", DiscountType.PERCENTAGE, 50, is_stackable=True)
        add_voucher(self.db, "BIGFIX", DiscountType.FIXED_AMOUNT, 80, is_stackable=True)

        verdict = validate_stack(self.db, ["HALF", "BIGFIX"], 100, now=NOW)
        self.assertTrue(verdict.valid)
        self.assertAlmostEqual(verdict.total_savings, 100.0)
        self.assertAlmostEqual(verdict.final_amount, 0.0)

    def test_non_stackable_voucher_conflicts(self):
        add_voucher(self.db, "TEN", DiscountType.FIXED_AMOUNT, 10, is_stackable=True)
        add_voucher(self.db, "SOLO", DiscountType.FIXED_AMOUNT, 15, is_stackable=False)

        response = validate_stack(self.db, ["TEN", "SOLO"], 200, now=NOW).to_response()
        self.assertFalse(response["valid"])
        self.assertEqual(response["message"], "Some vouchers cannot be combined: SOLO")
        self.assertEqual(response["conflicting_vouchers"], ["SOLO"])

    def test_stack_limit(self):
        for code in ("A1", "B2", "C3"):
            add_voucher(self.db, code, DiscountType.FIXED_AMOUNT, 5, is_stackable=True)
        verdict = validate_stack(self.db, ["A1", "B2", "C3"], 200, now=NOW)
        self.assertFalse(verdict.valid)
        self.assertEqual(verdict.message, "Maximum of 2 vouchers can be stacked per booking")

    def test_missing_codes(self):
        add_voucher(self.db, "TEN", DiscountType.FIXED_AMOUNT, 10, is_stackable=True)
        self.assertEqual(validate_stack(self.db, ["TEN", "NOPE"], 200, now=NOW).message, "Invalid voucher code: NOPE")
        self.assertEqual(validate_stack(self.db, ["NOPE", "NADA"], 200, now=NOW).message, "No valid vouchers found")

    def test_duplicates_and_empty_input(self):
        add_voucher(self.db, "TEN", DiscountType.FIXED_AMOUNT, 10, is_stackable=True)
        self.assertFalse(validate_stack(self.db, ["TEN", "ten"], 200, now=NOW).valid)
        with self.assertRaises(VoucherInputError):
            validate_stack(self.db, [], 200, now=NOW)
        with self.assertRaises(VoucherInputError):
            validate_stack(self.db, ["TEN", "FIVE"], -5, now=NOW)

    def test_each_voucher_is_gated_on_the_original_amount(self):
        add_voucher(self.db, "HALF", DiscountType.PERCENTAGE, 50, is_stackable=True)
        add_voucher(self.db, "MIN150", DiscountType.FIXED_AMOUNT, 10, is_stackable=True, minimum_rental_amount=150)
        verdict = validate_stack(self.db, ["HALF", "MIN150"], 200, now=NOW)
        self.assertTrue(verdict.valid)
        self.assertAlmostEqual(verdict.total_savings, 110.0)

        failing = validate_stack(self.db, ["HALF", "MIN150"], 120, now=NOW)
        self.assertEqual(failing.message, "Minimum booking amount of RM150 required")

    def test_single_code_matches_single_validation(self):
        add_voucher(self.db, "SAVE20", DiscountType.PERCENTAGE, 20)
        single = validate_voucher(self.db, "SAVE20", 200, now=NOW)
        stacked = validate_stack(self.db, ["SAVE20"], 200, now=NOW)
        self.assertTrue(stacked.valid)
        self.assertAlmostEqual(stacked.total_savings, single.discount_amount)
        self.assertAlmostEqual(stacked.final_amount, single.final_amount)


class TestFindBestCombination(StackingTestCase):
    def test_ranks_singles_and_pairs(self):
        add_voucher(self.db, "TEN", DiscountType.FIXED_AMOUNT, 10, is_stackable=True)
        add_voucher(self.db, "FIFTEEN", DiscountType.FIXED_AMOUNT, 15, is_stackable=True)
        add_voucher(self.db, "HALF", DiscountType.PERCENTAGE, 50)

        result = find_best_combination(self.db, ["TEN", "FIFTEEN", "HALF", "NOPE"], 100, now=NOW)
        self.assertEqual(result["best_combination"]["codes"], ["HALF"])
        self.assertEqual(result["best_combination"]["total_savings"], 50.0)
        self.assertEqual(
            [c["codes"] for c in result["alternative_combinations"]],
            [["TEN", "FIFTEEN"], ["FIFTEEN"], ["TEN"]],
        )
        self.assertEqual(result["alternative_combinations"][0]["description"], "Stackable combination: TEN + FIFTEEN")

    def test_nothing_applicable(self):
        result = find_best_combination(self.db, ["NOPE"], 100, now=NOW)
        self.assertIsNone(result["best_combination"])
        self.assertEqual(result["alternative_combinations"], [])


if __name__ == "__main__":
    unittest.main()
