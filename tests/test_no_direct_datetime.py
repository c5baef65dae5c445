from scripts.check_no_direct_datetime import find_violations


def test_no_direct_datetime_usage_in_package() -> None:
    violations = find_violations()

    assert not violations, 'Direct datetime usage found:\n' + '\n'.join(
        f'{path}:{line_no}: {line}' for path, line_no, line in violations
    )
