from edit_bridge.cli.main import main

raise SystemExit(main())
