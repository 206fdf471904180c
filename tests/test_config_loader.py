"""
Unit Tests for YAML configuration loading
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from cloudwatch_poller.ingestion.config import StartAt, StreamFilter
from cloudwatch_poller.ingestion.errors import ConfigurationError
from cloudwatch_poller.utils.config_loader import ConfigLoader, buildInputConfig, parseDuration


class TestParseDuration(unittest.TestCase):

    def testValidDurations(self):
        cases = {
            15: 15.0,
            1.5: 1.5,
            '30': 30.0,
            '15s': 15.0,
            '500ms': 0.5,
            '1m': 60.0,
            '2h': 7200.0,
            '1h30m': 5400.0,
            '1m30s': 90.0,
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertAlmostEqual(parseDuration(value), expected)

    def testInvalidDurations(self):
        for value in [None, True, '', 'soon', '15x', 's15', '1m garbage']:
            with self.subTest(value=value):
                with self.assertRaises(ConfigurationError):
                    parseDuration(value)


class TestConfigLoader(unittest.TestCase):

    def setUp(self):
        self.tempDir = tempfile.TemporaryDirectory()
        self.path = Path(self.tempDir.name) / 'config.yaml'

    def tearDown(self):
        self.tempDir.cleanup()

    def write(self, content):
        self.path.write_text(content)
        return ConfigLoader(str(self.path))

    def testEnvironmentSubstitution(self):
        loader = self.write("cloudwatch:\n  region: ${POLLER_TEST_REGION}\n  profile: ${POLLER_UNSET_VAR}\n")

        with mock.patch.dict(os.environ, {'POLLER_TEST_REGION': 'eu-west-1'}):
            os.environ.pop('POLLER_UNSET_VAR', None)
            config = loader.load()

        self.assertEqual(config['cloudwatch']['region'], 'eu-west-1')
        self.assertEqual(config['cloudwatch']['profile'], '${POLLER_UNSET_VAR}')

    def testDottedGet(self):
        loader = self.write("checkpoint:\n  path: /tmp/state.json\npoller:\n  max_concurrency: 0\n")
        loader.load()

        self.assertEqual(loader.get('checkpoint.path'), '/tmp/state.json')
        self.assertEqual(loader.get('checkpoint.missing', 'default'), 'default')
        self.assertEqual(loader.get('checkpoint.path.deeper', 'default'), 'default')
        self.assertEqual(loader.get('poller.max_concurrency'), 0)

    def testMissingFile(self):
        with self.assertRaises(FileNotFoundError):
            ConfigLoader(str(self.path)).load()

    def testInvalidYaml(self):
        with self.assertRaises(ConfigurationError):
            self.write("cloudwatch: [unclosed\n").load()

    def testNonMapping(self):
        with self.assertRaises(ConfigurationError):
            self.write("- just\n- a list\n").load()

    def testEmptyFile(self):
        loader = self.write("")

        self.assertEqual(loader.load(), {})
        self.assertFalse(loader.validate())

    def testValidate(self):
        loader = self.write("cloudwatch:\n  log_group_name: app\n")
        loader.load()

        self.assertTrue(loader.validate())


class TestBuildInputConfig(unittest.TestCase):

    def testFullSection(self):
        cfg = buildInputConfig({
            'region': 'us-east-1',
            'profile': 'ops',
            'log_group_name': '/app/%Y-%m-%d',
            'log_groups': ['/billing', None],
            'log_group_prefix': '/aws/ecs',
            'log_stream_names': ['web-1', None],
            'start_at': 'beginning',
            'poll_interval': '15s',
            'event_limit': 500,
        })
        plan = cfg.build()

        self.assertEqual(cfg.log_groups, ['/billing'])
        self.assertEqual(plan.pollInterval, 15.0)
        self.assertEqual(plan.eventLimit, 500)
        self.assertEqual(plan.startAt, StartAt.BEGINNING)
        self.assertEqual(plan.streams, StreamFilter.ofNames(['web-1']))
        self.assertEqual(plan.profile, 'ops')
        self.assertEqual(len(plan.groups), 3)

    def testDefaults(self):
        cfg = buildInputConfig({'log_group_name': 'app'})

        self.assertEqual(cfg.poll_interval, 60.0)
        self.assertEqual(cfg.event_limit, 1000)
        self.assertIsNone(cfg.start_at)
        self.assertEqual(cfg.build().startAt, StartAt.END)

    def testSingleStringList(self):
        cfg = buildInputConfig({'log_groups': 'app'})

        self.assertEqual(cfg.log_groups, ['app'])

    def testUnknownKey(self):
        with self.assertRaisesRegex(ConfigurationError, 'log_group'):
            buildInputConfig({'log_group': 'app'})

    def testInvalidEventLimit(self):
        for value in ['many', True, [1]]:
            with self.subTest(value=value):
                with self.assertRaises(ConfigurationError):
                    buildInputConfig({'log_group_name': 'app', 'event_limit': value})

    def testInvalidListType(self):
        with self.assertRaises(ConfigurationError):
            buildInputConfig({'log_stream_names': {'a': 1}})

    def testSectionMustBeMapping(self):
        with self.assertRaises(ConfigurationError):
            buildInputConfig(['app'])


if __name__ == '__main__':
    unittest.main()
