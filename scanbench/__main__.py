from scanbench.cli import main

raise SystemExit(main())
