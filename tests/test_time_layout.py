"""
Unit Tests for time layout rendering and millisecond conversion
"""

import unittest
from datetime import datetime, timedelta, timezone

from cloudwatch_poller.ingestion.time_layout import (
    containsDirective,
    formatLayout,
    fromUnixMillis,
    toUnixMillis,
)


ALL_DIRECTIVES = "%Y-%y-%m-%q-%b-%h-%B-%d-%g-%a-%A"


def at(epochSeconds):
    return datetime.fromtimestamp(epochSeconds, tz=timezone.utc)


class TestFormatLayout(unittest.TestCase):

    def testDatePattern(self):
        self.assertEqual(formatLayout("%Y-%m-%d", at(1620843711)), "2021-05-12")

    def testTrailingText(self):
        self.assertEqual(formatLayout("%Y-%m-%d/Test", at(1620843711)), "2021-05-12/Test")

    def testRepeatedDirectiveOnlyFirstSubstituted(self):
        self.assertEqual(formatLayout("%Y-%m-%d %Y-%m-%d", at(1620843711)), "2021-05-12 %Y-%m-%d")

    def testAllDirectives(self):
        cases = [
            (1639351311, "2021-21-12-12-Dec-Dec-December-12-12-Sun-Sunday"),
            (1619907711, "2021-21-05-5-May-May-May-01-1-Sat-Saturday"),
            (1620858111, "2021-21-05-5-May-May-May-12-12-Wed-Wednesday"),
            (1583018511, "2020-20-02-2-Feb-Feb-February-29-29-Sat-Saturday"),
        ]
        for epoch, expected in cases:
            with self.subTest(epoch=epoch):
                self.assertEqual(formatLayout(ALL_DIRECTIVES, at(epoch)), expected)

    def testClockDirectives(self):
        self.assertEqual(formatLayout("%H:%M:%S %j", at(1620843711)), "18:21:51 132")

    def testCurrentTime(self):
        now = datetime.now(timezone.utc)
        self.assertEqual(formatLayout("%Y/%m/%d", now), now.strftime("%Y/%m/%d"))

    def testNoDirectivesUnchanged(self):
        for pattern in ["2021-05-12", "/aws/lambda/app", "plain text"]:
            for epoch in [0, 1583018511, 1639351311]:
                self.assertEqual(formatLayout(pattern, at(epoch)), pattern)

    def testEmptyPattern(self):
        self.assertEqual(formatLayout("", at(1583018511)), "")

    def testSymbolsPassThrough(self):
        self.assertEqual(formatLayout("%^&*!@#$()-=+_", at(1583018511)), "%^&*!@#$()-=+_")

    def testUnknownDirectiveAndTrailingPercent(self):
        self.assertEqual(formatLayout("%Q-%Y-%", at(1620843711)), "%Q-2021-%")

    def testNonUtcInputRenderedInUtc(self):
        local = datetime(2021, 5, 12, 20, 21, 51, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(formatLayout("%Y-%m-%d %H", local), "2021-05-12 18")

    def testNaiveInputTreatedAsUtc(self):
        self.assertEqual(formatLayout("%Y-%m-%d %H", datetime(2021, 5, 12, 18, 0)), "2021-05-12 18")


class TestContainsDirective(unittest.TestCase):

    def testDetectsDirective(self):
        self.assertTrue(containsDirective("/app/%Y-%m-%d"))
        self.assertTrue(containsDirective("%A"))

    def testNoDirective(self):
        self.assertFalse(containsDirective("/app/static"))
        self.assertFalse(containsDirective("%Q%"))
        self.assertFalse(containsDirective(""))


class TestUnixMillis(unittest.TestCase):

    def testFromUnixMillis(self):
        self.assertEqual(int(fromUnixMillis(1620842185279).timestamp()), 1620842185)

    def testRoundTrip(self):
        self.assertEqual(toUnixMillis(fromUnixMillis(1620842185279)), 1620842185279)

    def testRoundTripPreservesSeconds(self):
        now = datetime.now(timezone.utc)
        self.assertEqual(int(fromUnixMillis(toUnixMillis(now)).timestamp()), int(now.timestamp()))

    def testNaiveDatetime(self):
        self.assertEqual(toUnixMillis(datetime(1970, 1, 1, 0, 0, 1)), 1000)

    def testEpoch(self):
        self.assertEqual(toUnixMillis(fromUnixMillis(0)), 0)
        self.assertEqual(fromUnixMillis(0).tzinfo, timezone.utc)


if __name__ == '__main__':
    unittest.main()
