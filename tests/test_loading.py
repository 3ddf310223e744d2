import os
import unittest

import numpy as np

import pycarshape
from pycarshape import (
    SingleViewPoseAdjustmentProblem,
    SingleViewShapeAdjustmentProblem,
    MultiViewShapeAndPoseProblem,
    ProblemFormatError,
    ProblemVariant,
)
from .mock_data import MockDataTest, MockProblem, LAYOUTS

LOADERS = {
    ProblemVariant.SINGLE_VIEW_POSE: SingleViewPoseAdjustmentProblem,
    ProblemVariant.SINGLE_VIEW_SHAPE: SingleViewShapeAdjustmentProblem,
    ProblemVariant.MULTI_VIEW_SHAPE_AND_POSE: MultiViewShapeAndPoseProblem,
}


class TestProblemLoading(unittest.TestCase):
    """Tests for loading the three problem file layouts."""

    def setUp(self):
        self.mock_data = MockDataTest()
        self.mock_data.setup()

    def tearDown(self):
        self.mock_data.cleanup()

    def _load(self, variant, num_views, num_pts, num_obs):
        path, mock = self.mock_data.write_problem(variant, num_views, num_pts, num_obs)
        problem = LOADERS[variant]()
        self.assertTrue(problem.load(path))
        return problem, mock

    def test_pose_only_sizes(self):
        """1 view, 14 keypoints, 10 observations."""
        problem, mock = self._load(ProblemVariant.SINGLE_VIEW_POSE, 1, 14, 10)

        self.assertEqual(problem.dims, (1, 14, 10))
        self.assertEqual(problem.get_car_center().size, 3)
        self.assertEqual(problem.get_K().size, 9)
        self.assertEqual(problem.observations().size, 20)
        self.assertEqual(problem.observation_weights().size, 10)
        self.assertEqual(problem.get_X_bar().size, 30)
        self.assertEqual(problem.get_V().size, 42 * 3 * 14)
        self.assertEqual(problem.get_lambdas().size, 42)
        self.assertFalse(hasattr(problem, "get_rotation"))

        # 3 dimensions + 6 geometry values + 1875 block values
        data = problem.get_internal_data()
        self.assertEqual(data.num_scalars(), 3 + 6 + 1875)
        self.assertEqual(data.num_scalars(), len(mock.tokens))

    def test_shape_and_pose_sizes(self):
        problem, mock = self._load(ProblemVariant.SINGLE_VIEW_SHAPE, 1, 14, 10)

        self.assertEqual(problem.get_rotation().size, 9)
        self.assertEqual(problem.get_translation().size, 3)
        self.assertEqual(problem.get_internal_data().num_scalars(), 3 + 6 + 1887)
        np.testing.assert_array_equal(problem.get_translation(), mock.expected["translation"])

    def test_multi_view_sizes(self):
        problem, mock = self._load(ProblemVariant.MULTI_VIEW_SHAPE_AND_POSE, 2, 14, 10)

        self.assertEqual(problem.get_num_views(), 2)
        self.assertEqual(problem.get_K().size, 9)
        self.assertEqual(problem.get_car_center().size, 6)
        self.assertEqual(problem.observations().size, 40)
        self.assertEqual(problem.observation_weights().size, 20)
        self.assertEqual(problem.get_X_bar().size, 60)
        self.assertEqual(problem.get_V().size, 3528)
        self.assertEqual(problem.get_lambdas().size, 42)
        self.assertEqual(problem.get_rotations().size, 18)
        self.assertEqual(problem.get_translations().size, 6)
        self.assertEqual(problem.get_internal_data().num_scalars(), len(mock.tokens))

    def test_values_in_file_order(self):
        for variant in LOADERS:
            problem, mock = self._load(variant, 2, 3, 2)
            data = problem.get_internal_data()
            for name, _ in LAYOUTS[variant]:
                np.testing.assert_array_equal(data.buffers[name], mock.expected[name], err_msg=name)

    def test_geometry_getters(self):
        problem, mock = self._load(ProblemVariant.SINGLE_VIEW_POSE, 1, 2, 2)
        h, w, l = mock.expected["car_size"]
        self.assertEqual(problem.get_car_height(), h)
        self.assertEqual(problem.get_car_width(), w)
        self.assertEqual(problem.get_car_length(), l)

    def test_multi_view_indexing(self):
        """Flat offsets of the per-view fields follow the nested read order."""
        num_views, num_pts, num_obs = 2, 3, 4
        problem, mock = self._load(ProblemVariant.MULTI_VIEW_SHAPE_AND_POSE, num_views, num_pts, num_obs)

        V = problem.get_V()
        V_view = problem.view("V")
        self.assertEqual(V_view.shape, (num_views, 42, num_pts, 3))
        counter = 0
        for v in range(num_views):
            for b in range(42):
                for k in range(num_pts):
                    for c in range(3):
                        offset = pycarshape.basis_offset(v, b, k, c, num_pts)
                        self.assertEqual(offset, counter)
                        self.assertEqual(V[offset], mock.expected["V"][counter])
                        self.assertEqual(V_view[v, b, k, c], V[offset])
                        counter += 1

        obs = problem.view("observations")
        X_bar = problem.view("X_bar")
        weights = problem.view("observation_weights")
        for v in range(num_views):
            for j in range(num_obs):
                self.assertEqual(weights[v, j], problem.observation_weights()[pycarshape.weight_offset(v, j, num_obs)])
                for k in range(2):
                    self.assertEqual(obs[v, j, k], problem.observations()[pycarshape.observation_offset(v, j, k, num_obs)])
                for k in range(3):
                    self.assertEqual(X_bar[v, j, k], problem.get_X_bar()[pycarshape.mean_shape_offset(v, j, k, num_obs)])

        np.testing.assert_array_equal(problem.view_block("car_center", 1), mock.expected["car_center"][3:6])
        np.testing.assert_array_equal(problem.view_block("K", 1), mock.expected["K"])
        np.testing.assert_array_equal(problem.translation(1), mock.expected["translation"][3:6])
        with self.assertRaises(IndexError):
            problem.view_block("V", 2)

    def test_single_view_intrinsics_per_declared_view(self):
        """Single-view layouts read one intrinsics block per declared view."""
        with self.assertLogs("pycarshape.problem", level="WARNING"):
            problem, mock = self._load(ProblemVariant.SINGLE_VIEW_POSE, 2, 2, 1)
        self.assertEqual(problem.get_K().size, 18)
        np.testing.assert_array_equal(problem.intrinsics_matrix(1).ravel(), mock.expected["K"][9:])

    def test_zero_views(self):
        problem, _ = self._load(ProblemVariant.MULTI_VIEW_SHAPE_AND_POSE, 0, 14, 10)
        self.assertEqual(problem.get_V().size, 0)
        self.assertEqual(problem.get_rotations().size, 0)
        self.assertEqual(problem.get_lambdas().size, 42)
        self.assertEqual(problem.get_K().size, 9)

        blocks = problem.parameter_blocks()
        self.assertEqual([b.name for b in blocks if not b.constant], ["lambdas"])
        self.assertEqual(problem.get_parameter_block("V").size, 0)

    def test_trailing_tokens_are_ignored(self):
        mock = MockProblem(ProblemVariant.SINGLE_VIEW_SHAPE, 1, 2, 2)
        path = mock.write(self.mock_data.path("trailing.txt"), mock.tokens + ["1.0", "junk"])
        problem = SingleViewShapeAdjustmentProblem()
        self.assertTrue(problem.load(path))
        np.testing.assert_array_equal(problem.get_translation(), mock.expected["translation"])

    def test_read_problem_function(self):
        path, mock = self.mock_data.write_problem(ProblemVariant.SINGLE_VIEW_SHAPE, 1, 2, 2)
        data = pycarshape.read_problem(path, "single_view_shape")
        self.assertEqual(data.variant, ProblemVariant.SINGLE_VIEW_SHAPE)
        self.assertEqual(data.shape_of("V"), (42, 2, 3))
        with self.assertRaises(ValueError):
            pycarshape.read_problem(path, "stereo")
        with self.assertRaises(FileNotFoundError):
            pycarshape.read_problem(self.mock_data.path("missing.txt"), ProblemVariant.SINGLE_VIEW_SHAPE)

    def test_statistics(self):
        problem, mock = self._load(ProblemVariant.SINGLE_VIEW_POSE, 1, 14, 10)
        stats = problem.get_statistics()
        self.assertEqual(stats["num_obs"], 10.0)
        self.assertAlmostEqual(stats["mean_observation_weight"], float(mock.expected["observation_weights"].mean()))


class TestLoadFailures(unittest.TestCase):
    """Tests for open failures and malformed files."""

    def setUp(self):
        self.mock_data = MockDataTest()
        self.mock_data.setup()

    def tearDown(self):
        self.mock_data.cleanup()

    def test_missing_file_returns_false(self):
        for loader_cls in LOADERS.values():
            problem = loader_cls()
            with self.assertLogs("pycarshape.problem", level="WARNING"):
                self.assertFalse(problem.load(self.mock_data.path("does_not_exist.txt")))
            self.assertFalse(problem.is_loaded)
            self.assertEqual(problem._views, {})
            with self.assertRaises(RuntimeError):
                problem.get_lambdas()

    def test_directory_returns_false(self):
        problem = SingleViewPoseAdjustmentProblem()
        self.assertFalse(problem.load(self.mock_data.temp_dir))
        self.assertFalse(problem.is_loaded)

    def test_truncation_in_every_field_raises(self):
        for variant, loader_cls in LOADERS.items():
            mock = MockProblem(variant, 2, 2, 1)
            path = self.mock_data.path(f"{variant.name}.txt")

            for index, name in enumerate(["num_views", "num_pts", "num_obs"]):
                mock.write(path, mock.tokens[:index])
                with self.assertRaises(ProblemFormatError) as ctx:
                    loader_cls().load(path)
                self.assertEqual(ctx.exception.field, name)

            for name, (start, end) in mock.spans.items():
                mock.write(path, mock.tokens[:end - 1])
                problem = loader_cls()
                with self.assertRaises(ProblemFormatError) as ctx:
                    problem.load(path)
                self.assertEqual(ctx.exception.field, name, msg=variant.name)
                self.assertIn("end of file", str(ctx.exception))
                self.assertFalse(problem.is_loaded)

    def test_non_numeric_token_raises(self):
        mock = MockProblem(ProblemVariant.MULTI_VIEW_SHAPE_AND_POSE, 2, 2, 1)
        start, end = mock.spans["X_bar"]
        tokens = list(mock.tokens)
        tokens[start + 2] = "nope"
        path = mock.write(self.mock_data.path("bad.txt"), tokens)

        problem = MultiViewShapeAndPoseProblem()
        with self.assertRaises(ProblemFormatError) as ctx:
            problem.load(path)
        err = ctx.exception
        self.assertEqual(err.field, "X_bar")
        self.assertEqual(err.token, "nope")
        self.assertEqual(err.token_index, start + 2)
        self.assertEqual(err.line, (start + 2) // 7 + 1)
        self.assertEqual(err.source, path)
        self.assertTrue(str(err).startswith("Invalid data file"))

    def test_non_ascii_bytes_raise_format_error(self):
        mock = MockProblem(ProblemVariant.SINGLE_VIEW_POSE, 1, 2, 1)
        path = self.mock_data.path("binary.txt")
        text = mock.text().encode("ascii")
        with open(path, "wb") as f:
            f.write(text[:20] + b"\xff\xfe" + text[20:])
        problem = SingleViewPoseAdjustmentProblem()
        with self.assertRaises(ProblemFormatError) as ctx:
            problem.load(path)
        self.assertIsInstance(ctx.exception.__cause__, UnicodeDecodeError)
        self.assertIn("0xff", str(ctx.exception))
        self.assertEqual(ctx.exception.source, path)
        self.assertFalse(problem.is_loaded)

    def test_underscore_digit_group_rejected(self):
        mock = MockProblem(ProblemVariant.SINGLE_VIEW_POSE, 1, 2, 1)
        tokens = list(mock.tokens)
        start, _ = mock.spans["car_center"]
        tokens[start] = "1_0"
        path = mock.write(self.mock_data.path("underscore.txt"), tokens)
        with self.assertRaises(ProblemFormatError) as ctx:
            SingleViewPoseAdjustmentProblem().load(path)
        self.assertEqual(ctx.exception.field, "car_center")
        self.assertEqual(ctx.exception.token, "1_0")

    def test_negative_dimension_rejected(self):
        mock = MockProblem(ProblemVariant.SINGLE_VIEW_POSE, 1, 2, 1)
        tokens = list(mock.tokens)
        tokens[1] = "-2"
        path = mock.write(self.mock_data.path("negative.txt"), tokens)
        with self.assertRaises(ProblemFormatError) as ctx:
            SingleViewPoseAdjustmentProblem().load(path)
        self.assertEqual(ctx.exception.field, "num_pts")

    def test_oversized_dimension_rejected(self):
        path = self.mock_data.path("huge.txt")
        with open(path, "w") as f:
            f.write("1 5000 10\n")
        problem = SingleViewPoseAdjustmentProblem(max_dimension=1000)
        with self.assertRaises(ProblemFormatError) as ctx:
            problem.load(path)
        self.assertEqual(ctx.exception.field, "num_pts")
        self.assertIn("1000", str(ctx.exception))

    def test_failed_reload_keeps_previous_problem(self):
        path, mock = self.mock_data.write_problem(ProblemVariant.SINGLE_VIEW_SHAPE, 1, 2, 2)
        problem = SingleViewShapeAdjustmentProblem()
        self.assertTrue(problem.load(path))
        lambdas = problem.get_lambdas()

        bad = mock.write(self.mock_data.path("truncated.txt"), mock.tokens[:-1])
        with self.assertRaises(ProblemFormatError):
            problem.load(bad)
        self.assertEqual(problem.path, path)
        self.assertIs(problem.get_lambdas(), lambdas)

    def test_more_observations_than_keypoints_warns(self):
        path, _ = self.mock_data.write_problem(ProblemVariant.SINGLE_VIEW_POSE, 1, 2, 3)
        with self.assertLogs("pycarshape.problem", level="WARNING") as logs:
            self.assertTrue(SingleViewPoseAdjustmentProblem().load(path))
        self.assertTrue(any("more observations" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
