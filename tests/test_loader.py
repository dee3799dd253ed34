"""
Test suite for the project data model and project stores
"""

import unittest

from crossing_registration.preprocessing.loader import InMemoryProjectStore, SwathProjectStore
from crossing_registration.preprocessing.project import (
    Crossing,
    Ping,
    Project,
    Section,
    Swath,
    Tie,
)


def _swath(n_pings: int = 3) -> Swath:
    return Swath([
        Ping(float(i), 5.0, 60.0 + i * 1e-4, 0.0, [5.0, 5.0001], [60.0, 60.0], [20.0, 21.0], [True, True])
        for i in range(n_pings)
    ])


class TestProjectModel(unittest.TestCase):
    """Test cases for sections, ties and crossings."""

    def setUp(self):
        self.crossing = Crossing(3, 0, 7, 2, overlap=40, ties=[Tie(1.0, 2.0, 0.5), Tie(9.0, 9.0)])
        self.project = Project(
            "survey",
            sections=[Section(3, 0), Section(7, 2)],
            crossings=[self.crossing],
        )

    def test_crossing_label_and_key(self):
        self.assertEqual(self.crossing.label, "3:0/7:2")
        self.assertEqual(self.crossing.key(), (3, 0, 7, 2))
        self.assertEqual(self.crossing.num_ties, 2)

    def test_rough_offset_is_first_tie(self):
        self.assertEqual(self.crossing.rough_offset(), (1.0, 2.0, 0.5))
        self.assertIsNone(Crossing(1, 0, 2, 0).rough_offset())

    def test_find_crossing(self):
        self.assertIs(self.project.find_crossing((3, 0, 7, 2)), self.crossing)
        self.assertIsNone(self.project.find_crossing((7, 2, 3, 0)))

    def test_find_section(self):
        self.assertEqual(self.project.find_section(7, 2).label, "7:2")
        with self.assertRaises(KeyError):
            self.project.find_section(1, 1)


class TestProjectStores(unittest.TestCase):
    """Test cases for borrowing crossing swaths."""

    def setUp(self):
        self.crossing = Crossing(1, 0, 2, 0, overlap=50)
        self.project = Project("p", sections=[Section(1, 0), Section(2, 0)], crossings=[self.crossing])

    def test_roles_and_release(self):
        store = InMemoryProjectStore({(1, 0): _swath(3), (2, 0): _swath(5)})
        with store.load_crossing_data(self.project, self.crossing) as data:
            self.assertEqual(data.target_section.label, "1:0")
            self.assertEqual(data.source_section.label, "2:0")
            self.assertEqual(data.source_swath.num_pings, 5)
        self.assertEqual(data.target_swath.num_pings, 0)
        self.assertEqual(data.source_swath.num_pings, 0)
        self.assertEqual(store.swaths[(2, 0)].num_pings, 5)

    def test_release_on_error(self):
        store = SwathProjectStore(reader=lambda section: _swath(2))
        with self.assertRaises(RuntimeError):
            with store.load_crossing_data(self.project, self.crossing) as data:
                raise RuntimeError("boom")
        self.assertEqual(data.source_swath.num_pings, 0)

    def test_target_released_when_source_read_fails(self):
        target = _swath(4)

        def reader(section):
            if section.file_id == 2:
                raise IOError("cannot decode source section")
            return target

        store = SwathProjectStore(reader=reader)
        with self.assertRaises(IOError):
            with store.load_crossing_data(self.project, self.crossing):
                pass
        self.assertEqual(target.num_pings, 0)

    def test_missing_swath(self):
        store = InMemoryProjectStore({(1, 0): _swath()})
        with self.assertRaises(KeyError):
            with store.load_crossing_data(self.project, self.crossing):
                pass


if __name__ == "__main__":
    unittest.main()
