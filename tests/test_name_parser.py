import unittest

from name_normalizer.core.identity.parser import NameParser, is_initials_token, parse_name


class TestNameParser(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = NameParser()

    def assertParts(self, raw, first="", middle="", prefix="", last="", suffix=""):
        parsed = self.parser.parse(raw)
        self.assertEqual(parsed.fields(), (first, middle, prefix, last, suffix), raw)
        return parsed

    def test_given_middle_family(self) -> None:
        parsed = self.assertParts("Jerry Alan Fodor", first="Jerry", middle="Alan", last="Fodor")
        self.assertEqual(parsed.original, "Jerry Alan Fodor")

    def test_middle_initial(self) -> None:
        self.assertParts("Jerry A. Fodor", first="Jerry", middle="A.", last="Fodor")

    def test_compact_initials_stay_together(self) -> None:
        self.assertParts("J.A. Fodor", first="J.A.", last="Fodor")

    def test_spaced_initials_split_into_middle(self) -> None:
        self.assertParts("J. R. R. Tolkien", first="J.", middle="R. R.", last="Tolkien")

    def test_multiple_middle_names(self) -> None:
        self.assertParts("John Ronald Reuel Tolkien", first="John", middle="Ronald Reuel", last="Tolkien")

    def test_comma_inversion(self) -> None:
        self.assertParts("Fodor, Jerry A.", first="Jerry", middle="A.", last="Fodor")

    def test_inverted_initials(self) -> None:
        self.assertParts("Fodor, J.A.", first="J.A.", last="Fodor")
        self.assertParts("Fodor, J.", first="J.", last="Fodor")

    def test_inverted_given_name_loses_lone_period(self) -> None:
        self.assertParts("Boogerd, Fred.", first="Fred", last="Boogerd")

    def test_inverted_particles(self) -> None:
        self.assertParts("Beethoven, Ludwig van", first="Ludwig", prefix="van", last="Beethoven")
        self.assertParts("van der Berg, Jan", first="Jan", prefix="van der", last="Berg")

    def test_suffixes(self) -> None:
        self.assertParts("John Smith Jr", first="John", last="Smith", suffix="Jr")
        self.assertParts("John Smith, Jr.", first="John", last="Smith", suffix="Jr.")
        self.assertParts("Smith, John, Jr.", first="John", last="Smith", suffix="Jr.")
        self.assertParts("Henry Ford III", first="Henry", last="Ford", suffix="III")

    def test_particles(self) -> None:
        self.assertParts("Eva van Dijk", first="Eva", prefix="van", last="Dijk")
        self.assertParts("Ludwig van Beethoven", first="Ludwig", prefix="van", last="Beethoven")
        self.assertParts("Juan de la Cruz", first="Juan", prefix="de la", last="Cruz")

    def test_multi_token_particle(self) -> None:
        self.assertParts("Maria del Carmen Rodriguez", first="Maria", prefix="del Carmen", last="Rodriguez")

    def test_double_surname_keeps_last_token_as_family_name(self) -> None:
        self.assertParts("Gabriel Garcia Marquez", first="Gabriel", middle="Garcia", last="Marquez")

    def test_inverted_double_surname_matches_direct_order(self) -> None:
        self.assertParts("Garcia Marquez, Gabriel", first="Gabriel", middle="Garcia", last="Marquez")
        self.assertParts("Garcia Marquez, Gabriel Jose", first="Gabriel", middle="Jose Garcia", last="Marquez")
        self.assertParts("Beethoven, Ludwig van", first="Ludwig", prefix="van", last="Beethoven")

    def test_hyphen_and_apostrophe_tokens_are_not_split(self) -> None:
        self.assertParts("Jean-Paul Sartre", first="Jean-Paul", last="Sartre")
        self.assertParts("Flannery O'Connor", first="Flannery", last="O'Connor")

    def test_single_token_is_last_name(self) -> None:
        self.assertParts("Fodor", last="Fodor")

    def test_trailing_commas_are_stripped(self) -> None:
        self.assertParts("Fodor,", last="Fodor")
        self.assertParts("Jerry Fodor, ,", first="Jerry", last="Fodor")

    def test_whitespace_is_collapsed(self) -> None:
        self.assertParts("  Jerry \t Alan   Fodor ", first="Jerry", middle="Alan", last="Fodor")

    def test_empty_input_never_raises(self) -> None:
        self.assertTrue(self.parser.parse(None).is_empty)
        self.assertEqual(self.parser.parse(None).original, "")
        self.assertEqual(self.parser.parse("").original, "")
        blank = self.parser.parse("   ")
        self.assertTrue(blank.is_empty)
        self.assertEqual(blank.original, "   ")

    def test_parsed_name_is_immutable(self) -> None:
        parsed = parse_name("Jerry Fodor")
        with self.assertRaises(AttributeError):
            parsed.first_name = "J."  # type: ignore[misc]

    def test_initials_token_detection(self) -> None:
        self.assertTrue(is_initials_token("J."))
        self.assertTrue(is_initials_token("J.A."))
        self.assertFalse(is_initials_token("Jo."))
        self.assertFalse(is_initials_token("J"))


if __name__ == "__main__":
    unittest.main()
