from consul_lock.cli.main import main

main()
