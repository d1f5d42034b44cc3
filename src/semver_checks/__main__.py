from semver_checks.cli import main

main()
