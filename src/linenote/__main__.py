from linenote.cli import main

raise SystemExit(main())
