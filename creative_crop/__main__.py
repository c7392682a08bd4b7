from creative_crop.app import main

main()
