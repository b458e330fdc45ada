"""
Hummingbird controller tests:
- Observation layout and bounds
- Nearest-flower preference and self-healing
- Pitch/yaw filtering and the pitch clamp
- Feeding only at the beak tip, rewards, boundary penalty
- Freeze/unfreeze, manual control, safe spawning
"""

from __future__ import annotations
import math
import random
import unittest

import numpy as np

from hummingbird_sim.config import AgentConfig, TAG_BOUNDARY
from hummingbird_sim.domain import geometry as geo
from hummingbird_sim.domain.agents.heuristic import KeyState
from hummingbird_sim.domain.agents.hummingbird import HummingbirdAgent, SpawnError, FreezeError
from hummingbird_sim.domain.environment.scene import Transform
from tests.scenes import make_agent, make_area, one_flower_scene, three_flower_scene


class _Wall:
    tag = TAG_BOUNDARY


def _signed_pitch(agent) -> float:
    pitch, _, _ = geo.euler_angles(agent.body.rotation)
    return pitch - 360.0 if pitch > 180.0 else pitch


def _put_beak_at(agent, point, rotation=geo.IDENTITY):
    """Pose the body so that the beak tip sits exactly on `point`."""
    agent.body.rotation = rotation
    offset = geo.rotate(rotation, np.array(agent.config.beak_tip_offset))
    agent.body.position = np.asarray(point) - offset


class TestLifecycle(unittest.TestCase):

    def test_uninitialized_agent_refuses_to_run(self):
        agent = HummingbirdAgent(random.Random(0))
        self.assertEqual(agent.state, "uninitialized")
        with self.assertRaises(RuntimeError):
            agent.on_episode_begin()

    def test_step_budget_only_in_training(self):
        area, physics = make_area(one_flower_scene())
        self.assertEqual(make_agent(area, physics, training=False).max_step, 0)
        cfg = AgentConfig(max_step=123)
        self.assertEqual(make_agent(area, physics, training=True, config=cfg).max_step, 123)

    def test_episode_begin_resets_counters_and_velocity(self):
        area, physics = make_area(three_flower_scene())
        agent = make_agent(area, physics, training=False)
        agent.on_episode_begin()
        agent._nectar_obtained = 0.5
        agent.body.velocity = np.array([1.0, 2.0, 3.0])
        agent.on_episode_begin()
        self.assertEqual(agent.nectar_obtained, 0.0)
        np.testing.assert_array_equal(agent.body.velocity, np.zeros(3))
        self.assertEqual(agent.state, "active")

    def test_control_filter_carries_over_episodes(self):
        area, physics = make_area(one_flower_scene())
        agent = make_agent(area, physics, training=False)
        agent.on_action_received([0.0, 0.0, 0.0, 1.0, -1.0])
        agent.on_episode_begin()
        self.assertAlmostEqual(agent.smooth_pitch_change, 0.04)
        self.assertAlmostEqual(agent.smooth_yaw_change, -0.04)

    def test_training_episode_refills_flowers(self):
        area, physics = make_area(three_flower_scene())
        agent = make_agent(area, physics, training=True, seed=1)
        for f in area.flowers:
            f.feed(1.0)
        agent.on_episode_begin()
        self.assertTrue(all(f.has_nectar for f in area.flowers))
        self.assertIsNotNone(agent.nearest_flower)

    def test_gameplay_episode_leaves_flowers_alone(self):
        area, physics = make_area(three_flower_scene())
        agent = make_agent(area, physics, training=False)
        area.flowers[2].feed(1.0)
        agent.on_episode_begin()
        self.assertFalse(area.flowers[2].has_nectar)


class TestSpawning(unittest.TestCase):

    def test_gameplay_spawns_in_front_of_a_flower(self):
        area, physics = make_area(one_flower_scene())
        agent = make_agent(area, physics, training=False, seed=4)
        f = area.flowers[0]
        for _ in range(10):
            agent.on_episode_begin()
            offset = agent.body.position - f.position
            standoff = float(np.dot(offset, f.up_vector))
            self.assertGreaterEqual(standoff, 0.10 - 1e-9)
            self.assertLessEqual(standoff, 0.20 + 1e-9)
            # looking straight at the nectar
            to_center = geo.normalized(f.center_position - agent.body.position)
            np.testing.assert_allclose(agent.body.transform.forward, to_center, atol=1e-9)

    def test_free_spawn_ranges(self):
        area, physics = make_area(one_flower_scene(position=(0.0, 0.3, 0.0)))
        agent = make_agent(area, physics, training=True, seed=9)
        for _ in range(25):
            agent.move_to_safe_random_position(in_front_of_flower=False)
            rel = agent.body.position - area.center
            self.assertTrue(1.2 <= rel[1] <= 2.5)
            self.assertTrue(2.0 - 1e-9 <= math.hypot(rel[0], rel[2]) <= 7.0 + 1e-9)
            pitch = _signed_pitch(agent)
            self.assertTrue(-6.0 - 1e-6 <= pitch <= 60.0 + 1e-6)

    def test_spawn_position_clear_of_colliders(self):
        area, physics = make_area(three_flower_scene())
        agent = make_agent(area, physics, training=True, seed=2)
        for _ in range(20):
            agent.on_episode_begin()
            self.assertEqual(physics.overlap_sphere(agent.body.position, agent.config.spawn_clearance), [])

    def test_crowded_area_is_fatal(self):
        area, physics = make_area(one_flower_scene())
        physics.add_collider(Transform(), radius=1000.0, tag="rock")
        agent = make_agent(area, physics, training=True)
        with self.assertRaises(SpawnError):
            agent.on_episode_begin()


class TestNearestFlower(unittest.TestCase):

    def _agent_near(self, area, physics, x):
        agent = make_agent(area, physics, training=False)
        _put_beak_at(agent, np.array([x, 1.5, 0.0]))
        return agent

    def test_closest_full_flower_wins(self):
        area, physics = make_area(three_flower_scene())
        agent = self._agent_near(area, physics, 3.9)
        agent.update_nearest_flower()
        self.assertEqual(agent.nearest_flower.name, "far")

    def test_empty_target_replaced_even_by_farther_flower(self):
        area, physics = make_area(three_flower_scene())
        agent = self._agent_near(area, physics, 0.0)
        agent.update_nearest_flower()
        self.assertEqual(agent.nearest_flower.name, "near")
        area.flowers[0].feed(1.0)
        area.flowers[1].feed(1.0)
        agent.update_nearest_flower()
        self.assertEqual(agent.nearest_flower.name, "far")

    def test_never_selects_empty_when_full_exists(self):
        rng = random.Random(17)
        for trial in range(30):
            area, physics = make_area(three_flower_scene(), seed=trial)
            agent = self._agent_near(area, physics, rng.uniform(-1.0, 5.0))
            agent.update_nearest_flower()
            for f in area.flowers:
                if rng.random() < 0.6:
                    f.feed(1.0)
            agent.update_nearest_flower()
            if any(f.has_nectar for f in area.flowers):
                self.assertTrue(agent.nearest_flower.has_nectar)

    def test_physics_step_heals_stale_target(self):
        area, physics = make_area(three_flower_scene())
        agent = self._agent_near(area, physics, 0.0)
        agent.update_nearest_flower()
        area.flowers[0].feed(1.0)  # another bird drained it
        self.assertEqual(agent.nearest_flower.name, "near")
        agent.on_physics_step()
        self.assertEqual(agent.nearest_flower.name, "mid")

    def test_all_empty_keeps_stale_target(self):
        area, physics = make_area(three_flower_scene())
        agent = self._agent_near(area, physics, 0.0)
        agent.update_nearest_flower()
        for f in area.flowers:
            f.feed(1.0)
        agent.on_physics_step()
        self.assertEqual(agent.nearest_flower.name, "near")
        self.assertEqual(agent.collect_observations().shape, (10,))


class TestObservations(unittest.TestCase):

    def test_zero_vector_without_target(self):
        area, physics = make_area(three_flower_scene())
        agent = make_agent(area, physics)
        obs = agent.collect_observations()
        self.assertEqual(obs.shape, (10,))
        self.assertFalse(obs.any())

    def test_layout_and_bounds(self):
        area, physics = make_area(three_flower_scene())
        for seed in range(10):
            agent = make_agent(area, physics, training=True, seed=seed)
            agent.on_episode_begin()
            obs = agent.collect_observations()
            self.assertEqual(obs.shape, (10,))
            self.assertAlmostEqual(float(np.linalg.norm(obs[0:4])), 1.0, places=5)
            self.assertAlmostEqual(float(np.linalg.norm(obs[4:7])), 1.0, places=5)
            self.assertTrue(np.all(np.abs(obs[0:9]) <= 1.0 + 1e-6))
            self.assertTrue(0.0 <= obs[9] <= 1.0)

    def test_alignment_terms_when_facing_the_opening(self):
        area, physics = make_area(one_flower_scene())
        agent = make_agent(area, physics)
        f = area.flowers[0]
        down = geo.look_rotation(-f.up_vector)
        _put_beak_at(agent, f.center_position + f.up_vector * 0.3, rotation=down)
        agent.update_nearest_flower()
        obs = agent.collect_observations()
        self.assertAlmostEqual(float(obs[7]), 1.0, places=5)
        self.assertAlmostEqual(float(obs[8]), 1.0, places=5)
        self.assertAlmostEqual(float(obs[9]), 0.3 / 20.0, places=5)


class TestActions(unittest.TestCase):

    def _agent(self, training=False):
        area, physics = make_area(one_flower_scene())
        agent = make_agent(area, physics, training=training)
        agent.body.position = np.array([0.0, 2.0, -3.0])
        agent.body.rotation = geo.IDENTITY
        return agent

    def test_pitch_converges_to_limit_and_never_exceeds_it(self):
        agent = self._agent()
        seen = []
        for _ in range(300):
            agent.on_action_received([0.0, 0.0, 0.0, 1.0, 0.0])
            seen.append(_signed_pitch(agent))
        self.assertLessEqual(max(seen), 80.0 + 1e-6)
        self.assertAlmostEqual(seen[-1], 80.0, places=4)

    def test_negative_pitch_clamps_too(self):
        agent = self._agent()
        for _ in range(300):
            agent.on_action_received([0.0, 0.0, 0.0, -1.0, 0.0])
        self.assertAlmostEqual(_signed_pitch(agent), -80.0, places=4)

    def test_control_signal_is_rate_limited(self):
        agent = self._agent()
        agent.on_action_received([0.0, 0.0, 0.0, 1.0, -1.0])
        self.assertAlmostEqual(agent.smooth_pitch_change, 0.04)
        self.assertAlmostEqual(agent.smooth_yaw_change, -0.04)
        for _ in range(100):
            agent.on_action_received([0.0, 0.0, 0.0, 1.0, -1.0])
        self.assertEqual(agent.smooth_pitch_change, 1.0)
        self.assertEqual(agent.smooth_yaw_change, -1.0)

    def test_yaw_turns_freely_and_roll_stays_level(self):
        agent = self._agent()
        for _ in range(400):
            agent.on_action_received([0.0, 0.0, 0.0, 0.0, 1.0])
            _, _, roll = geo.euler_angles(agent.body.rotation)
            self.assertLess(min(roll, 360.0 - roll), 1e-6)
        # 400 steps at up to 2 deg/step is well past a full turn
        self.assertAlmostEqual(float(agent.body.transform.right[1]), 0.0, places=6)

    def test_force_scaled_by_move_force(self):
        agent = self._agent()
        agent.on_action_received([1.0, 0.0, 0.0, 0.0, 0.0])
        agent.body.integrate(0.02)
        # v = F/m * dt with F = 2.0
        np.testing.assert_allclose(agent.body.velocity, [0.04, 0.0, 0.0], atol=1e-12)

    def test_wrong_action_size(self):
        agent = self._agent()
        with self.assertRaises(ValueError):
            agent.on_action_received([0.0, 0.0, 0.0])


class TestFeeding(unittest.TestCase):

    def _setup(self, training=True, scene=None):
        area, physics = make_area(scene or one_flower_scene())
        agent = make_agent(area, physics, training=training)
        agent.update_nearest_flower()
        return agent, area

    def test_beak_in_nectar_feeds_and_rewards(self):
        agent, area = self._setup()
        f = area.flowers[0]
        _put_beak_at(agent, f.center_position)
        agent.on_trigger_enter(f.nectar_collider)
        self.assertAlmostEqual(agent.nectar_obtained, 0.01)
        self.assertAlmostEqual(f.nectar_amount, 0.99)
        # sideways approach: no alignment bonus
        self.assertAlmostEqual(agent.consume_reward(), 0.01)

    def test_aligned_beak_earns_full_bonus(self):
        agent, area = self._setup()
        f = area.flowers[0]
        _put_beak_at(agent, f.center_position, rotation=geo.look_rotation(-f.up_vector))
        agent.on_trigger_stay(f.nectar_collider)
        self.assertAlmostEqual(agent.consume_reward(), 0.03)

    def test_other_body_parts_do_not_feed(self):
        agent, area = self._setup()
        f = area.flowers[0]
        agent.body.rotation = geo.IDENTITY
        agent.body.position = f.center_position  # body inside, beak 10 cm away
        agent.on_trigger_stay(f.nectar_collider)
        self.assertEqual(agent.nectar_obtained, 0.0)
        self.assertEqual(f.nectar_amount, 1.0)
        self.assertEqual(agent.consume_reward(), 0.0)

    def test_no_reward_outside_training(self):
        agent, area = self._setup(training=False)
        f = area.flowers[0]
        _put_beak_at(agent, f.center_position)
        agent.on_trigger_stay(f.nectar_collider)
        self.assertAlmostEqual(agent.nectar_obtained, 0.01)
        self.assertEqual(agent.consume_reward(), 0.0)

    def test_emptied_flower_retargets(self):
        agent, area = self._setup(scene=three_flower_scene())
        near = area.flowers[0]
        _put_beak_at(agent, near.center_position)
        agent.update_nearest_flower()
        self.assertIs(agent.nearest_flower, near)
        for _ in range(100):
            agent.on_trigger_stay(near.nectar_collider)
        self.assertFalse(near.has_nectar)
        self.assertEqual(agent.nearest_flower.name, "mid")
        self.assertAlmostEqual(agent.nectar_obtained, 1.0, places=9)
        # a disabled sensor reports nothing more
        agent.on_trigger_stay(near.nectar_collider)
        self.assertAlmostEqual(agent.nectar_obtained, 1.0, places=9)

    def test_boundary_penalty_in_training(self):
        agent, _ = self._setup(training=True)
        agent.on_collision_enter(_Wall())
        self.assertEqual(agent.consume_reward(), -0.5)
        self.assertEqual(agent.cumulative_reward, -0.5)

    def test_boundary_ignored_outside_training(self):
        agent, _ = self._setup(training=False)
        agent.on_collision_enter(_Wall())
        self.assertEqual(agent.consume_reward(), 0.0)


class TestFreeze(unittest.TestCase):

    def test_freeze_blocks_actions_and_stops_body(self):
        area, physics = make_area(one_flower_scene())
        agent = make_agent(area, physics, training=False)
        agent.body.velocity = np.array([1.0, 0.0, 0.0])
        rot = agent.body.rotation
        agent.freeze()
        self.assertEqual(agent.state, "frozen")
        self.assertTrue(agent.body.sleeping)
        np.testing.assert_array_equal(agent.body.velocity, np.zeros(3))

        agent.on_action_received([1.0, 1.0, 1.0, 1.0, 1.0])
        agent.body.integrate(0.02)
        np.testing.assert_array_equal(agent.body.rotation, rot)
        np.testing.assert_array_equal(agent.body.velocity, np.zeros(3))

        agent.unfreeze()
        self.assertEqual(agent.state, "active")
        self.assertFalse(agent.body.sleeping)
        agent.on_action_received([1.0, 0.0, 0.0, 0.0, 0.0])
        agent.body.integrate(0.02)
        self.assertGreater(agent.body.velocity[0], 0.0)

    def test_freeze_not_allowed_in_training(self):
        area, physics = make_area(one_flower_scene())
        agent = make_agent(area, physics, training=True)
        with self.assertRaises(FreezeError):
            agent.freeze()
        with self.assertRaises(FreezeError):
            agent.unfreeze()


class TestHeuristic(unittest.TestCase):

    def _agent(self, yaw=0.0):
        area, physics = make_area(one_flower_scene())
        agent = make_agent(area, physics)
        agent.body.rotation = geo.quat_from_euler(0.0, yaw, 0.0)
        return agent

    def test_no_keys_no_action(self):
        np.testing.assert_array_equal(self._agent().heuristic(KeyState()), np.zeros(5))

    def test_forward_follows_heading(self):
        agent = self._agent(yaw=90.0)
        a = agent.heuristic(KeyState(forward=True))
        np.testing.assert_allclose(a[0:3], [1.0, 0.0, 0.0], atol=1e-6)

    def test_combined_direction_is_unit(self):
        a = self._agent().heuristic(KeyState(forward=True, right=True, up=True))
        self.assertAlmostEqual(float(np.linalg.norm(a[0:3])), 1.0, places=6)
        np.testing.assert_allclose(a[0:3], np.ones(3) / math.sqrt(3.0), atol=1e-6)

    def test_pitch_and_yaw_are_discrete(self):
        a = self._agent().heuristic(KeyState(pitch_up=True, yaw_right=True))
        self.assertEqual(float(a[3]), -1.0)
        self.assertEqual(float(a[4]), 1.0)
        b = self._agent().heuristic(KeyState(pitch_down=True, yaw_left=True, back=True, left=True, down=True))
        self.assertEqual(float(b[3]), 1.0)
        self.assertEqual(float(b[4]), -1.0)
        np.testing.assert_allclose(b[0:3], -np.ones(3) / math.sqrt(3.0), atol=1e-6)

    def test_key_names(self):
        ks = KeyState.from_pressed(["W", "ArrowUp", "yaw_left", "nonsense"])
        self.assertTrue(ks.forward and ks.pitch_up and ks.yaw_left)
        self.assertFalse(ks.back or ks.down)


if __name__ == "__main__":
    unittest.main()
