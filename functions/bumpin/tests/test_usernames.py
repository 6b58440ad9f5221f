import unittest

from bumpin.errors import UsernameErrorKind, UsernameValidationError
from bumpin.usernames import validate_username_format


class ValidateUsernameFormatTests(unittest.TestCase):
    def assertKind(self, username, kind):
        with self.assertRaises(UsernameValidationError) as ctx:
            validate_username_format(username)
        self.assertEqual(ctx.exception.kind, kind)

    def test_valid_names_are_lowercased(self):
        self.assertEqual(validate_username_format("Alice.Smith_1"), "alice.smith_1")
        self.assertEqual(validate_username_format("abc"), "abc")
        self.assertEqual(validate_username_format("a" * 30), "a" * 30)

    def test_length(self):
        self.assertKind("ab", UsernameErrorKind.TOO_SHORT)
        self.assertKind("", UsernameErrorKind.TOO_SHORT)
        self.assertKind("a" * 31, UsernameErrorKind.TOO_LONG)

    def test_invalid_characters(self):
        self.assertKind("al ice", UsernameErrorKind.INVALID_CHARACTERS)
        self.assertKind("alice-smith", UsernameErrorKind.INVALID_CHARACTERS)
        self.assertKind("álice", UsernameErrorKind.INVALID_CHARACTERS)

    def test_start_and_end(self):
        self.assertKind(".alice", UsernameErrorKind.INVALID_START_OR_END)
        self.assertKind("alice_", UsernameErrorKind.INVALID_START_OR_END)

    def test_consecutive_specials(self):
        for name in ("a..b", "a__b", "a._b", "a_.b"):
            self.assertKind(name, UsernameErrorKind.CONSECUTIVE_SPECIAL_CHARACTERS)

    def test_reserved(self):
        self.assertKind("admin", UsernameErrorKind.RESERVED)
        self.assertKind("BumpIn", UsernameErrorKind.RESERVED)

    def test_rules_apply_in_order(self):
        # Too short wins over invalid characters.
        self.assertKind("a!", UsernameErrorKind.TOO_SHORT)
        # Invalid characters win over start/end.
        self.assertKind(".al!ce", UsernameErrorKind.INVALID_CHARACTERS)

    def test_error_messages(self):
        with self.assertRaises(UsernameValidationError) as ctx:
            validate_username_format("ab")
        self.assertEqual(
            ctx.exception.detail, "Username must be at least 3 characters long"
        )


if __name__ == "__main__":
    unittest.main()
