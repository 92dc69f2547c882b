from harbor.main import main

main()
