from .cli.pipeline_cli import main

raise SystemExit(main())
