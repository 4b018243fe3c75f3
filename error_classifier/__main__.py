from error_classifier.cli import main

main()
