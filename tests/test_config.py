"""
Unit Tests for source selection and polling configuration validation
"""

import unittest
from unittest import mock
from datetime import datetime, timezone

from cloudwatch_poller.ingestion.config import (
    GroupKind,
    GroupSelection,
    InputConfig,
    StartAt,
    StreamFilter,
    StreamFilterKind,
)
from cloudwatch_poller.ingestion.errors import ConfigurationError


def basicConfig(**overrides):
    values = {'region': 'test-region', 'log_groups': ['test', 'test-2']}
    values.update(overrides)
    return InputConfig(**values)


class TestBuild(unittest.TestCase):

    def testValidConfigs(self):
        cases = {
            'default': basicConfig(),
            'log-stream-name-prefix': basicConfig(log_stream_name_prefix=''),
            'event-limit': basicConfig(event_limit=5000),
            'event-limit-max': basicConfig(event_limit=10000),
            'poll-interval': basicConfig(poll_interval=15),
            'profile': basicConfig(profile='test'),
            'log-stream-names': basicConfig(log_stream_names=['test stream']),
            'startat-end': basicConfig(start_at='end'),
            'startat-beginning': basicConfig(start_at='beginning', log_stream_name_prefix='some prefix'),
            'startat-omitted': basicConfig(start_at=None),
            'log-group-name': InputConfig(region='test-region', log_group_name='test'),
            'log-groups-and-log-group-name': basicConfig(log_group_name='test'),
            'log-group-prefix': InputConfig(region='test-region', log_group_prefix='/aws'),
            'log-group-prefix-and-log-groups': basicConfig(log_group_prefix='/aws'),
            'log-group-prefix-and-log-group-name': InputConfig(
                region='test-region', log_group_prefix='/aws', log_group_name='test'),
            'all-group-fields': basicConfig(
                log_group_prefix='/aws', log_group_name='test', log_groups=['test', 'aws']),
        }
        for name, cfg in cases.items():
            with self.subTest(name):
                cfg.build()

    def testInvalidConfigs(self):
        cases = {
            'stream-names-and-prefix': basicConfig(
                log_stream_names=['test stream'], log_stream_name_prefix='some prefix'),
            'poll-interval-zero': basicConfig(poll_interval=0),
            'poll-interval-negative': basicConfig(poll_interval=-1),
            'event-limit-too-large': basicConfig(event_limit=10001),
            'event-limit-zero': basicConfig(event_limit=0),
            'startat-invalid': basicConfig(start_at='invalid'),
            'no-group-field': InputConfig(region='test-region'),
        }
        for name, cfg in cases.items():
            with self.subTest(name):
                with self.assertRaises(ConfigurationError):
                    cfg.build()

    def testConflictingStreamSelectorsCheckedFirst(self):
        cfg = InputConfig(
            log_stream_names=['a'],
            log_stream_name_prefix='b',
            event_limit=10001,
            start_at='invalid',
        )
        with self.assertRaisesRegex(ConfigurationError, 'mutually exclusive'):
            cfg.build()

    def testStartAtErrorNamesValue(self):
        with self.assertRaisesRegex(ConfigurationError, "'invalid'"):
            basicConfig(start_at='invalid').build()


class TestResolvedPlan(unittest.TestCase):

    def testGroupUnionIsDeduplicated(self):
        plan = basicConfig(log_group_name='test', log_group_prefix='/aws').build()

        self.assertEqual(plan.groups, (
            GroupSelection(GroupKind.NAME, 'test'),
            GroupSelection(GroupKind.NAME, 'test-2'),
            GroupSelection(GroupKind.PREFIX, '/aws'),
        ))

    def testDefaults(self):
        plan = InputConfig(log_group_name='test').build()

        self.assertEqual(plan.startAt, StartAt.END)
        self.assertEqual(plan.eventLimit, 1000)
        self.assertEqual(plan.pollInterval, 60.0)
        self.assertEqual(plan.streams.kind, StreamFilterKind.ALL)
        self.assertIsNone(plan.profile)

    def testStreamNamesDropEmptyEntries(self):
        plan = basicConfig(log_stream_names=[None, 'web-1', '', 'web-1']).build()

        self.assertEqual(plan.streams, StreamFilter.ofNames(['web-1']))

    def testNullStreamNamesDoNotConflictWithPrefix(self):
        plan = basicConfig(log_stream_names=[None], log_stream_name_prefix='web').build()

        self.assertEqual(plan.streams, StreamFilter.ofPrefix('web'))

    def testGroupsRenderedPerCycle(self):
        plan = InputConfig(log_group_name='/app/%Y-%m-%d', log_group_prefix='/rolled/%Y').build()

        first = plan.groupsAt(datetime.fromtimestamp(1620843711, tz=timezone.utc))
        later = plan.groupsAt(datetime.fromtimestamp(1639351311, tz=timezone.utc))

        self.assertEqual([g.value for g in first], ['/app/2021-05-12', '/rolled/2021'])
        self.assertEqual([g.value for g in later], ['/app/2021-12-12', '/rolled/2021'])
        self.assertEqual(plan.groups[0].value, '/app/%Y-%m-%d')

    def testRenderedNamesCollapse(self):
        plan = InputConfig(log_groups=['/app/%Y', '/app/2021']).build()

        rendered = plan.groupsAt(datetime(2021, 5, 12, tzinfo=timezone.utc))

        self.assertEqual(rendered, [GroupSelection(GroupKind.NAME, '/app/2021')])

    def testStreamFilterRendered(self):
        plan = basicConfig(log_stream_name_prefix='web-%Y-%m').build()

        streamFilter = plan.streamFilterAt(datetime(2021, 5, 12, tzinfo=timezone.utc))

        self.assertEqual(streamFilter, StreamFilter.ofPrefix('web-2021-05'))
        self.assertTrue(streamFilter.matches('web-2021-05-a'))
        self.assertFalse(streamFilter.matches('web-2021-06-a'))

    def testStaticNamesAreNotRendered(self):
        plan = basicConfig(log_stream_names=['web-1', 'web-2']).build()
        at = datetime(2021, 5, 12, tzinfo=timezone.utc)

        with mock.patch('cloudwatch_poller.ingestion.config.formatLayout') as formatLayout:
            groups = plan.groupsAt(at)
            streamFilter = plan.streamFilterAt(at)

        formatLayout.assert_not_called()
        self.assertEqual([g.value for g in groups], ['test', 'test-2'])
        self.assertIs(streamFilter, plan.streams)

    def testOnlyDynamicNamesAreRendered(self):
        plan = basicConfig(log_groups=['static', '/app/%Y']).build()

        with mock.patch('cloudwatch_poller.ingestion.config.formatLayout', return_value='/app/2021') as formatLayout:
            groups = plan.groupsAt(datetime(2021, 5, 12, tzinfo=timezone.utc))

        formatLayout.assert_called_once()
        self.assertEqual([g.value for g in groups], ['static', '/app/2021'])

    def testStreamFilterMatches(self):
        self.assertTrue(StreamFilter.all().matches('anything'))
        self.assertTrue(StreamFilter.ofNames(['a', 'b']).matches('b'))
        self.assertFalse(StreamFilter.ofNames(['a', 'b']).matches('c'))


class TestValidationPolicies(unittest.TestCase):

    def testSingleGroupFieldPolicy(self):
        cfg = basicConfig(log_group_prefix='/aws')

        cfg.build()
        with self.assertRaisesRegex(ConfigurationError, 'log_groups, log_group_prefix'):
            cfg.build(requireSingleGroupField=True)

    def testSingleGroupFieldPolicyAcceptsOneField(self):
        basicConfig().build(requireSingleGroupField=True)

    def testStreamPrefixForBeginningPolicy(self):
        cfg = basicConfig(start_at='beginning')

        cfg.build()
        with self.assertRaises(ConfigurationError):
            cfg.build(requireStreamPrefixForBeginning=True)

        basicConfig(start_at='beginning', log_stream_name_prefix='web').build(
            requireStreamPrefixForBeginning=True)


if __name__ == '__main__':
    unittest.main()
